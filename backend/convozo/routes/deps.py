# backend/convozo/routes/deps.py

from fastapi import Request


def get_checkout_service(request: Request):
    return request.app.state.checkout_service


def get_connect_service(request: Request):
    return request.app.state.connect_service


def get_webhook_service(request: Request):
    return request.app.state.webhook_service


def get_reply_service(request: Request):
    return request.app.state.reply_service
