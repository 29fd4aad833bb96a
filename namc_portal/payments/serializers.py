from rest_framework import serializers

from .models import PayoutMethod


class PayoutMethodSerializer(serializers.ModelSerializer):
    class Meta:
        model = PayoutMethod
        fields = [
            'id', 'provider', 'stripe_account_id', 'payouts_enabled', 'manual_method',
            'bank_name', 'account_last4', 'is_default', 'is_active', 'created_at',
        ]
        read_only_fields = ['id', 'payouts_enabled', 'created_at']


class PayoutMethodCreateSerializer(serializers.ModelSerializer):
    """
    Registers a payout destination for the current member.

    Fields:
        - provider (required): 'stripe' or 'manual'
        - stripe_account_id (required for stripe)
        - manual_method (required for manual), bank_name, account_last4
        - is_default
    """
    class Meta:
        model = PayoutMethod
        fields = ['provider', 'stripe_account_id', 'manual_method', 'bank_name', 'account_last4', 'is_default']

    def validate(self, attrs):
        user = self.context['request'].user
        provider = attrs['provider']

        if provider == 'stripe':
            account_id = attrs.get('stripe_account_id', '')
            if not account_id.startswith('acct_'):
                raise serializers.ValidationError({'stripe_account_id': "A Stripe Connect account id (acct_...) is required."})
            if PayoutMethod.objects.filter(user=user, provider='stripe', stripe_account_id=account_id).exists():
                raise serializers.ValidationError('This Stripe account is already added as a payout method.')
        elif not attrs.get('manual_method'):
            raise serializers.ValidationError({'manual_method': "Choose ACH, wire or check for manual payouts."})

        last4 = attrs.get('account_last4', '')
        if last4 and (len(last4) != 4 or not last4.isdigit()):
            raise serializers.ValidationError({'account_last4': "Enter the last four digits of the account."})
        return attrs

    def create(self, validated_data):
        user = self.context['request'].user
        if validated_data.get('is_default'):
            PayoutMethod.objects.filter(user=user, provider=validated_data['provider']).update(is_default=False)
        # Manual destinations need no onboarding; Stripe accounts are enabled once onboarding completes.
        validated_data['payouts_enabled'] = validated_data['provider'] == 'manual'
        return PayoutMethod.objects.create(user=user, **validated_data)


class SetPayoutMethodFlagsSerializer(serializers.Serializer):
    is_default = serializers.BooleanField(required=False)
    is_active = serializers.BooleanField(required=False)
