"""
Middleware applied to every request.

    Request → [Request ID] → [Access Log] → Route Handler

RequestIDMiddleware is added last so it runs first: the access log line and
every log record of the dispatch run share its ID.
"""
