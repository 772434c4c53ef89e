"""
Fixed vocabularies shared by the classifier, the structured builder and the embedding engine.
"""

# Brand alias -> canonical vendor name. Checked in insertion order.
VENDOR_ALIASES = {
    'kroger': 'Kroger',
    'walmart': 'Walmart',
    'target': 'Target',
    'costco': 'Costco',
    'amazon': 'Amazon',
    'whole foods': 'Whole Foods',
    'trader joe': "Trader Joe's",
    'safeway': 'Safeway',
    'publix': 'Publix',
    'cvs': 'CVS',
    'walgreens': 'Walgreens',
    'starbucks': 'Starbucks',
    'mcdonalds': "McDonald's",
    'chipotle': 'Chipotle',
    'shell': 'Shell',
    'exxon': 'Exxon',
    'home depot': 'Home Depot',
    'lowes': "Lowe's",
}

# Category vocabulary as stored in documents.category
CATEGORIES = [
    'grocery', 'restaurant', 'medical', 'pharmacy',
    'utilities', 'fuel', 'entertainment', 'retail',
    'services', 'travel', 'financial',
]

# Keywords that pull a text toward a category in embedding space
CATEGORY_KEYWORDS = {
    'grocery': ['grocery', 'groceries', 'produce', 'dairy', 'meat', 'bakery', 'deli',
                'kroger', 'walmart', 'safeway', 'publix', 'aldi', 'trader joe', 'whole foods'],
    'restaurant': ['restaurant', 'cafe', 'diner', 'pizza', 'burger', 'coffee', 'starbucks',
                   'mcdonalds', 'chipotle', 'subway', 'tip', 'server', 'gratuity'],
    'medical': ['medical', 'doctor', 'hospital', 'clinic', 'patient', 'diagnosis',
                'treatment', 'prescription', 'copay', 'insurance'],
    'pharmacy': ['pharmacy', 'rx', 'prescription', 'cvs', 'walgreens', 'rite aid',
                 'medication', 'drug'],
    'utilities': ['utility', 'utilities', 'electric', 'water', 'internet', 'phone', 'cable',
                  'bill', 'account number', 'due date'],
    'fuel': ['gas', 'fuel', 'gasoline', 'diesel', 'gallon', 'pump', 'shell', 'exxon',
             'chevron', 'bp', 'speedway'],
    'entertainment': ['movie', 'theater', 'concert', 'ticket', 'admission', 'entertainment',
                      'netflix', 'spotify'],
    'retail': ['store', 'purchase', 'item', 'product', 'return', 'target', 'amazon',
               'best buy', 'home depot'],
    'services': ['service', 'services', 'repair', 'maintenance', 'labor', 'installation',
                 'subscription'],
    'financial': ['bank', 'credit', 'debit', 'transaction', 'deposit', 'withdrawal',
                  'balance', 'statement', 'fee', 'interest', 'tax', 'invoice'],
    'travel': ['airline', 'flight', 'hotel', 'rental', 'travel', 'booking', 'reservation',
               'airport'],
}

# Words that end a free-form vendor phrase ("at corner bakery last month")
VENDOR_STOP_WORDS = [
    'last', 'this', 'past', 'in', 'for', 'during',
    'over', 'under', 'above', 'below', 'between',
]

# Analytical phrasing that needs reasoning beyond a filter
COMPLEX_KEYWORDS = [
    'compare', 'difference between', 'why', 'explain', 'recommend', 'what should',
    'analysis', 'trend', 'pattern', 'highest', 'lowest', 'most', 'least',
]

# Dropped before word hashing in the embedding engine
STOP_WORDS = frozenset([
    'a', 'an', 'the', 'and', 'or', 'but', 'of', 'to', 'in', 'on', 'at', 'for', 'from',
    'by', 'with', 'about', 'as', 'is', 'are', 'was', 'were', 'be', 'been', 'it', 'its',
    'this', 'that', 'these', 'those', 'i', 'me', 'my', 'we', 'our', 'you', 'your',
    'show', 'find', 'get', 'all', 'any', 'some', 'did', 'do', 'does', 'have', 'has',
])

EXAMPLE_QUERIES = [
    'find all invoices',
    'receipts from last month',
    'contracts from 2025',
    'invoices from Acme Corp',
    'tax documents from this year',
    'receipts over $100',
    'documents from last week',
    'all invoices from December',
]
