"""
HTTP layer

One router per area; endpoints stay thin and map domain errors to HTTP:
- consents, reviews, nominations, rounds, admin
- deps: acting user, capabilities and shared singletons
"""
