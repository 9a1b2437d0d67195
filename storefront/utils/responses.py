from flask import jsonify


def ok(data=None, message="success", status=200):
    payload = {"status": "success", "message": message}
    if data is not None:
        payload["data"] = data
    return jsonify(payload), status


def error(message, status=400, code=None, **extra):
    payload = {
        "status": "error",
        "message": message,
        "code": code or status,
    }
    payload.update(extra)
    return jsonify(payload), status


def validation_error_response(errors):
    fields = [".".join(str(p) for p in e.get("loc", ())) for e in errors]
    return error("Invalid request body", status=400, fields=fields)


def internal_error_response():
    return error("An unexpected error occurred, please try again later", status=500)
