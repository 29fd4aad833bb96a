from django.db import models
from django.contrib.auth import get_user_model

User = get_user_model()


class PayoutMethod(models.Model):
    """
    Where a member receives escrow releases: a Stripe Connect account, or an
    off-platform ACH/wire/check destination recorded for the bookkeeper.
    """
    PROVIDER_CHOICES = (
        ('stripe', 'Stripe'),
        ('manual', 'Manual (ACH / wire / check)'),
    )

    MANUAL_METHOD_CHOICES = (
        ('ach', 'ACH'),
        ('wire', 'Wire'),
        ('check', 'Check'),
    )

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='payout_methods')
    provider = models.CharField(max_length=20, choices=PROVIDER_CHOICES)
    stripe_account_id = models.CharField(max_length=255, blank=True, help_text="Stripe Connect account ID (acct_...)")
    payouts_enabled = models.BooleanField(default=False)
    manual_method = models.CharField(max_length=10, choices=MANUAL_METHOD_CHOICES, blank=True)
    bank_name = models.CharField(max_length=100, blank=True)
    account_last4 = models.CharField(max_length=4, blank=True)

    is_default = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Payout Method"
        verbose_name_plural = "Payout Methods"
        ordering = ['-is_default', '-created_at']

    def __str__(self):
        if self.provider == 'stripe':
            return f"{self.user.email} - Stripe {self.stripe_account_id}"
        return f"{self.user.email} - {self.get_manual_method_display() or 'Manual'}"

    def as_recipient(self):
        recipient = {'member_id': str(self.user_id), 'email': self.user.email}
        if self.provider == 'stripe':
            recipient['stripe_account_id'] = self.stripe_account_id
        else:
            recipient.update(method=self.manual_method, bank_name=self.bank_name, account_last4=self.account_last4)
        return recipient
