# /agrichat/config/catalogue.py

# Fixed pick-lists offered in the chat: countries at signup, product
# categories and units, harvest units and quote currencies.

COUNTRIES = {
    "country_gd": "Grenada",
    "country_vc": "St. Vincent",
    "country_lc": "St Lucia",
    "country_dm": "Dominica",
    "country_kn": "St Kitts",
}

PRODUCT_CATEGORIES = [
    "Vegetables",
    "Fruits",
    "Herbs",
    "Grains",
    "Legumes",
    "Root Crops",
    "Spices",
    "Beverages",
    "Dairy",
    "Meat",
    "Seafood",
    "Other",
]
CATEGORY_PAGE_SIZE = 9

PRODUCT_UNITS = ["piece", "dozen", "kg", "g", "lb", "oz", "liter", "ml", "gallon"]
HARVEST_UNITS = ["kg", "lb", "tonne", "sacks", "crates"]

CURRENCIES = ["USD", "XCD", "NGN"]
PRODUCT_CURRENCY = "XCD"

ORDER_STATUSES = ["processing", "shipped", "delivered"]

LIST_PAGE_SIZE = 5
MAX_PRODUCT_PHOTOS = 5
