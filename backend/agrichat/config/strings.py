# /agrichat/config/strings.py

# This file contains all user-facing strings, making them easy to manage,
# update, and localize without changing conversation logic. Keys in
# TRANSLATIONS are looked up per session locale; the upper-case constants are
# English-only system messages.

TRANSLATIONS = {
    "en": {
        "welcome_back": "Welcome back, {name}! Pick an action:",
        "more": "More:",
        "upload_product": "Upload product",
        "post_harvest": "Post harvest",
        "requests_quotes": "Requests & quotes",
        "orders": "Orders",
        "transactions": "Transactions",
        "faq": "FAQ",
        "change_language": "Change language",
        "undo": "Undo last step",
        "ask_price": "Base price? (numbers only, e.g., 1500)",
        "ask_photo": "Send a product photo now.",
        "ask_harvest_window": 'Harvest window? (e.g., "2-3 weeks" or "Apr 10-20")',
        "ask_quantity": "Quantity? (numbers only)",
        "ask_delivery": 'Delivery date? (YYYY-MM-DD) or "skip"',
        "ask_notes": 'Notes? (optional, type "skip" to continue)',
        "ask_available_qty": "Available quantity?",
        "ask_shipping": 'Shipping method? (optional, type "skip" to continue)',
        "browse_products": "Browse products",
        "my_cart": "My cart",
        "my_products": "My products",
        "settings": "Settings:",
        "account": "Account:",
        "lock_account": "Lock account",
        "unlock_account": "Unlock account",
        "logout": "Logout",
        "sign_up": "Sign up",
        "login": "Login",
    },
    "es": {
        "welcome_back": "¡Bienvenido de nuevo, {name}! Elige una acción:",
        "more": "Más:",
        "upload_product": "Subir producto",
        "post_harvest": "Publicar cosecha",
        "requests_quotes": "Solicitudes y cotizaciones",
        "orders": "Pedidos",
        "transactions": "Transacciones",
        "faq": "FAQ",
        "change_language": "Cambiar idioma",
        "undo": "Deshacer último paso",
        "ask_price": "Precio base? (solo números, ej., 1500)",
        "ask_photo": "Envía una foto del producto ahora.",
        "ask_harvest_window": '¿Ventana de cosecha? (ej., "2-3 semanas" o "10-20 Abr")',
        "ask_quantity": "¿Cantidad? (solo números)",
        "ask_delivery": '¿Fecha de entrega? (AAAA-MM-DD) o "skip"',
        "ask_notes": '¿Notas? (opcional, escribe "skip" para continuar)',
        "ask_available_qty": "¿Cantidad disponible?",
        "ask_shipping": '¿Método de envío? (opcional, escribe "skip" para continuar)',
        "browse_products": "Ver productos",
        "my_cart": "Mi carrito",
        "my_products": "Mis productos",
        "settings": "Ajustes:",
        "account": "Cuenta:",
        "lock_account": "Bloquear cuenta",
        "unlock_account": "Desbloquear cuenta",
        "logout": "Cerrar sesión",
        "sign_up": "Registrarse",
        "login": "Iniciar sesión",
    },
}

SUPPORTED_LOCALES = {"en": "English", "es": "Español"}

# Menu and account
WELCOME_UNBOUND = "Welcome to {brand} on WhatsApp. Create your account to get started."
SIGN_UP_TO_CONTINUE = "Sign up to continue."
SIGN_UP_TO_BEGIN = 'Sign up to continue. Type "menu" to begin.'
LOGIN_OR_SIGNUP_FIRST = "Please sign up or log in first."
ACCOUNT_LOCKED = 'Your account is locked. Reply "unlock" to receive an OTP and unlock.'
ACCOUNT_LOCKED_IDLE = 'Your account was locked due to inactivity. Reply "unlock" to receive an OTP.'
ACCOUNT_NOW_LOCKED = 'Your account is now locked. Reply "unlock" to unlock with an OTP.'
ENTER_UNLOCK_CODE = "Enter the 6-digit code to unlock your account."
ACCOUNT_UNLOCKED = "✅ Account unlocked."
VERIFY_TO_CONTINUE = 'Please verify to continue. Reply "unlock".'
LOGGED_OUT = 'You have been logged out. Type "login" to sign in or "signup" to create an account.'
NO_ACCOUNT_FOR_NUMBER = 'No account found for this number. Type "signup" to create one.'
LOGIN_FAILED = 'Login failed. Please try again or type "signup".'
REPLY_WITH_CODE = "Please reply with the 6-digit code to continue."
REPLY_WITH_CODE_VERIFY = "Please reply with the 6-digit code to verify your account."
UNDO_DONE = "Reverted to previous step."
NOTHING_TO_UNDO = "Nothing to undo."
LANGUAGE_SET = "Language set to {locale}."

# Signup and verification
ASK_FULL_NAME = "Let's create your {brand} account. What's your full name?"
ASK_NAME_AGAIN = "What's your full name?"
ASK_ACCOUNT_TYPE = "Are you signing up as?"
PICK_ACCOUNT_TYPE = "Pick account type:"
ASK_FARMERS_ID = "Please upload a photo of your Farmer's ID to continue."
SIGNUP_FAILED = "Sign-up failed. Please try again."
OTP_FORMAT = "Please enter the 6-digit code we sent."
OTP_FORMAT_SHORT = "Please enter the 6-digit code."
OTP_MISMATCH = "That code does not match. Please try again."
OTP_EXPIRED = "The code is expired or invalid. Please start signup again."
TOO_MANY_ATTEMPTS = "Too many attempts. Please wait 10 minutes and try again."
VERIFIED = "✅ Verified! Your {brand} account is ready."
VERIFY_FAILED = "Verification failed. Please try again."

# Products
ASK_PRODUCT_NAME = "Product name?"
INVALID_PRODUCT_NAME = "Please enter a valid product name."
ASK_SHORT_DESC = 'Short description? (optional, type "skip" to continue)'
ASK_FULL_DESC = 'Full description? (optional, type "skip" to continue)'
INVALID_PRICE = "Enter a valid price (e.g., 5.99)."
ASK_STOCK = "Quantity in stock? (e.g., 0, 10, 250)"
INVALID_STOCK = "Enter a whole number (e.g., 0, 10, 250)."
ASK_PRODUCT_PHOTOS = 'Send a product photo now. You can add up to 5. After each photo, choose "Finish" or "Add another".'
PHOTO_ADDED = "Photo added. What next?"
PHOTO_LIMIT = 'You have added 5 photos. Type "Finish" or tap Finish to continue.'
SEND_ANOTHER_PHOTO = "Send another product photo."
NEED_ONE_PHOTO = "Please send at least one photo before finishing."
PHOTO_SAVE_FAILED = "Failed to save photo or create product. Try again."
SELLER_ONLY = 'Link your seller account first. Reply "signup" to create one or provide your registered email.'
LINK_SELLER_FIRST = "Please link your seller account first."
IMAGE_NOT_EXPECTED = "Image received. Product upload via WhatsApp starts from the menu: tap Upload product first."
IMAGE_IN_INVENTORY = "Viewing inventory. Images are not accepted here."
INVENTORY_USE_LIST = 'Use the list to navigate or tap a product. Type "menu" to exit.'
PRODUCT_NOT_FOUND = "Product not found."

# Harvests, requests and quotes
ASK_CROP = "Crop?"
INVALID_CROP = "Please enter the crop name."
INVALID_WINDOW = 'Please describe the harvest window (e.g., "2-3 weeks").'
INVALID_QUANTITY = "Please enter a valid number for quantity."
ASK_UNIT_PRICE = "Unit price?"
INVALID_UNIT_PRICE = "Enter a valid unit price (e.g., 1500)."
ASK_CURRENCY = "Currency?"
INVALID_AVAILABLE_QTY = "Enter a valid available quantity."
INVALID_DATE = "Please use the format YYYY-MM-DD, or type \"skip\"."
NO_OPEN_REQUESTS = "No open requests right now."
ASK_CAN_FULFILL = "Can you fulfill this request?"
ASK_HBR_MESSAGE = 'Optional message? (type "skip" to continue)'

# Orders and transactions
ASK_ETA = 'Estimated delivery date? (YYYY-MM-DD, or "skip")'
ASK_REJECT_REASON = "Reason for rejection?"
ASK_TRACKING = 'Tracking number? (optional, type "skip" to continue)'
PICK_STATUS = "Pick status:"
ORDER_ACTIONS = "Order actions:"
NO_PENDING_ORDERS = "No pending orders."
MISSING_ORDER_ID = "Missing order id. Please try again."
ASK_TRANSACTION_ID = "Enter transaction ID:"
INVALID_TRANSACTION_ID = "Please enter a transaction ID."
TRANSACTION_NOT_FOUND = "Transaction not found."
NO_TRANSACTIONS = "No recent transactions."

# Marketplace and cart
BUYER_ONLY = "Sign up or switch to a buyer account to continue."
CART_EMPTY = "Your cart is empty."
ADDED_TO_CART = "Added to cart ✅"
SELLER_NOT_FOUND = "Seller information unavailable."

# Help
HELP_FAILED = 'Sorry, I could not answer that. Type "menu" for options.'
FAQ_FAILED = 'Sorry, I could not load the FAQ. Type "menu" for options.'
DEFAULT_HELP_QUESTION = "Help using the {brand} WhatsApp bot."
FAQ_QUESTIONS = {
    "faq_harvest": "How do I post an upcoming harvest?",
    "faq_quotes": "How do I respond to buyer requests and submit a quote?",
    "faq_orders": "How do I accept, reject, or update an order?",
    "faq_transactions": "How can I check my recent transactions?",
}

# Failures
UNSUPPORTED_MESSAGE = 'Sorry, I can only read text, buttons and photos. Type "menu" for options.'
GENERIC_RETRY = "Something went wrong. Please try again."
OPERATION_FAILED = "{what} failed. Please try again."
