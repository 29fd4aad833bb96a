from .base import BasePaymentProvider
from .manual import ManualProvider
from .stripe import StripeProvider

PROVIDERS = {
    'stripe': StripeProvider,
    'manual': ManualProvider,
}


def get_payment_provider(provider_name: str, **kwargs) -> BasePaymentProvider:
    """
    Factory function to get payment provider instances.

    Args:
        provider_name: Name of the payment provider ('stripe' or 'manual')
        **kwargs: Additional configuration

    Returns:
        BasePaymentProvider: Payment provider instance
    """
    if provider_name not in PROVIDERS:
        raise ValueError(f"Unknown payment provider: {provider_name}")

    return PROVIDERS[provider_name](**kwargs)
