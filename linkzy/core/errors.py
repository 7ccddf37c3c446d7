"""
Domain errors.

Raised by linkzy.core and mapped to HTTP responses in linkzy.api.errors:
  - ValidationError      → 400  (bad URL, wrong page count, missing field)
  - NotFoundError        → 404  (unknown short code, ad, page)
  - CountdownNotFinished → 409  (funnel step confirmed too early)
  - ConflictError        → 412  (stale If-Match on the config singleton)
  - StoreError           → 500  (database failure, surfaced as "Server error")
"""


class LinkzyError(Exception):
    status_code = 500

    def __init__(self, message: str = "Server error"):
        super().__init__(message)
        self.message = message


class ValidationError(LinkzyError):
    status_code = 400


class NotFoundError(LinkzyError):
    status_code = 404


class CountdownNotFinished(LinkzyError):
    status_code = 409

    def __init__(self, remaining: int):
        super().__init__(f"Please wait {remaining}s before continuing")
        self.remaining = remaining


class ConflictError(LinkzyError):
    status_code = 412


class StoreError(LinkzyError):
    status_code = 500
