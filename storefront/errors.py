import logging
from flask import Blueprint, request
from werkzeug.exceptions import HTTPException
from storefront.services.errors import CheckoutError
from storefront.utils.responses import error, internal_error_response

logger = logging.getLogger(__name__)

errors_bp = Blueprint("errors_bp", __name__)


def checkout_error_response(e: CheckoutError):
    return error(str(e), status=e.status, **e.to_dict())


@errors_bp.app_errorhandler(HTTPException)
def handle_http_exception(e):
    msg = e.description or getattr(e, "name", "HTTP Error")
    return error(msg, status=e.code, code=e.code)


@errors_bp.app_errorhandler(CheckoutError)
def handle_checkout_error(e):
    if e.status >= 500:
        logger.error("%s on %s %s: %s %s", e.reason, request.method, request.path, e, e.details)
    else:
        logger.info("%s on %s %s: %s", e.reason, request.method, request.path, e)
    return checkout_error_response(e)


@errors_bp.app_errorhandler(Exception)
def handle_unexpected_exception(e):
    logger.exception("Unhandled exception on %s %s", request.method, request.path)
    return internal_error_response()
