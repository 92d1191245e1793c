"""Provider webhook handling: origin check, event classification, dispatch.

Use explicit imports:
    from app.services.webhook.dispatcher import EventDispatcher
"""
