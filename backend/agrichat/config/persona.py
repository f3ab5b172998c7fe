# /agrichat/config/persona.py

# Prompts for the AI helpers: structured field extraction from free text and
# short help answers grounded in the organization's own records.

RAG_SYSTEM_PROMPT = (
    "You assist farmers on WhatsApp. Answer concisely (<=2 sentences) using the provided "
    "context. If unclear, ask a short clarifying question."
)

RAG_NO_CONTEXT_ANSWER = 'I could not find relevant info. Try a different question or type "menu".'

EXTRACT_PRODUCT_PROMPT = (
    "Extract product fields from user text. JSON keys: name, base_price (number), "
    "currency (ISO), unit (default 'lb'). Omit unknowns."
)

EXTRACT_HARVEST_PROMPT = (
    "Extract harvest info. JSON: {crop, quantity (number), unit, expected_harvest_window, notes}. "
    "Omit unknowns."
)

EXTRACT_QUOTE_PROMPT = (
    "Extract quote fields. JSON: {request_id, unit_price (number), currency, "
    "available_quantity (number), delivery_date, notes}. Omit unknowns."
)

EXTRACT_ORDER_ACTION_PROMPT = (
    "Extract order action: accept/reject/update. JSON: {action, order_id, reason, "
    "tracking_number, status, estimated_delivery_date}. Omit unknowns."
)

RAG_CONTEXT_TEMPLATE = "Context:\n{context}\n\nQuestion: {question}"
