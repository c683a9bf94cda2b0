"""FastAPI dependencies resolving the services wired up in the server lifespan."""

from fastapi import Request


def get_store(request: Request):
    return request.app.state.store


def get_users(request: Request):
    return request.app.state.users


def get_generator(request: Request):
    return request.app.state.generator


def get_scheduler(request: Request):
    return request.app.state.scheduler


def get_scorer(request: Request):
    return request.app.state.scorer
