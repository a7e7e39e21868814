"""
HTTP routers. Services are read from `request.app.state` (see main.py).
"""
