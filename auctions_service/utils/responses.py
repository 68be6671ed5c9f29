from flask import jsonify


def ok(data=None, code=200):  return jsonify(data if data is not None else {}), code


def err(code_name, status=400, message=None, **extra):
    body = {"error": code_name}
    if message:
        body["message"] = message
    body.update(extra)
    return jsonify(body), status
