# discount_engine/exceptions.py

class DiscountError(Exception):
    """Base class for discount engine errors"""

class ValidationError(DiscountError, ValueError):
    """Bad input while creating a code; the message is shown to the seller as is"""

class PermissionDeniedError(DiscountError):
    """The user may not manage codes for this product"""
