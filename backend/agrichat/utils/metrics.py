# /agrichat/utils/metrics.py

from prometheus_client import Counter, Histogram, Gauge

# Prometheus metrics for the conversational channel, kept in one place.

# Ingestion
inbound_messages_counter = Counter('wa_inbound_messages_total', 'Inbound WhatsApp messages', ['kind'])
duplicate_messages_counter = Counter('wa_duplicate_messages_total', 'Inbound deliveries dropped as duplicates')
webhook_signature_counter = Counter('webhook_signature_verifications_total', 'Webhook signature verifications', ['status'])
response_time_histogram = Histogram('response_time_seconds', 'Response time in seconds', ['endpoint'])

# Conversation
transitions_counter = Counter('wa_transitions_total', 'State machine handler invocations', ['flow', 'kind'])
facade_errors_counter = Counter('wa_facade_errors_total', 'Marketplace facade failures surfaced to users', ['operation'])
locked_rejections_counter = Counter('wa_locked_rejections_total', 'Events rejected by the account lock gate')
ai_requests_counter = Counter('ai_requests_total', 'Total AI requests', ['operation', 'status'])

# Outbound
outbound_jobs_counter = Counter('wa_outbound_jobs_total', 'Outbound job outcomes', ['outcome'])
outbound_queue_gauge = Gauge('wa_outbound_delayed_jobs', 'Jobs waiting for their retry backoff')
templates_suppressed_counter = Counter('wa_templates_suppressed_total', 'Template sends suppressed by opt-out')

# Storage
session_store_errors = Counter('wa_session_store_errors_total', 'Session store failures', ['operation'])
cache_operations = Counter('cache_operations_total', 'Cache operations', ['operation', 'status'])
