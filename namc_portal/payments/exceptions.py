from rest_framework.exceptions import APIException


class PaymentProviderError(APIException):
    """
    The payment processor rejected or failed a request. Raised inside the
    escrow transaction so the ledger write rolls back with it.
    """
    status_code = 500
    default_detail = "Payment processor request failed."
    default_code = 'payment_provider_error'
