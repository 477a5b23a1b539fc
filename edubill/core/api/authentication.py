"""
Bearer token authentication for the Edubill API.

Usage:
    Authorization: Bearer <api_token>
"""

from rest_framework.authentication import TokenAuthentication


class BearerAuthentication(TokenAuthentication):
    """
    Token authentication using the Bearer keyword.

    DRF's TokenAuthentication expects "Token <key>". Billing clients send the
    OAuth 2.0 style "Bearer <key>" header (RFC 6750), so only the keyword
    changes. Token storage and validation are DRF's.
    """

    keyword = "Bearer"
