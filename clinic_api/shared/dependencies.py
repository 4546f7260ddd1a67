"""Request dependencies shared across domain routers"""

from fastapi import Request


def get_payment_provider(request: Request):
    """Payment provider client built once at startup (see main.lifespan)"""
    return request.app.state.payment_provider
