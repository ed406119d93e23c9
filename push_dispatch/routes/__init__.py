"""
HTTP route handlers. Routes stay thin: parse the body, call a service,
return its result; errors travel to the handlers in main.py.

    dispatch.py  POST /dispatch, /push-new-image, /push-new-message
    devices.py   POST /devices, DELETE /devices
    health.py    GET  /health
"""
