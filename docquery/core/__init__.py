# Core package: configuration, errors, domain records and store access
