from decimal import Decimal

from rest_framework import serializers

from .models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    user = serializers.PrimaryKeyRelatedField(read_only=True)
    course_title = serializers.CharField(source="course.title", read_only=True, default=None)

    class Meta:
        model = Payment
        fields = [
            "id",
            "user",
            "course",
            "course_title",
            "tx_ref",
            "amount",
            "type",
            "status",
            "platform_share",
            "instructor_share",
            "gateway_fee_estimate",
            "payout_credited",
            "payout_status",
            "payout_paid_at",
            "payout_tx_ref",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PayoutSerializer(PaymentSerializer):
    """Credited payment as seen by the operator paying instructors out."""

    instructor = serializers.IntegerField(source="course.instructor_id", read_only=True, default=None)

    class Meta(PaymentSerializer.Meta):
        fields = PaymentSerializer.Meta.fields + ["instructor"]
        read_only_fields = fields


class PaymentInitiateSerializer(serializers.Serializer):
    """
    Body of ``chapa/init/``. The course is resolved by the settlement service
    so an unknown course id maps to the same error everywhere.
    """

    course = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    type = serializers.ChoiceField(choices=Payment.TYPE_CHOICES)


class PaymentCreateSerializer(PaymentInitiateSerializer):
    tx_ref = serializers.CharField(max_length=100)


class PaymentUpdateSerializer(serializers.Serializer):
    course = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    amount = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0.01"), required=False
    )
    type = serializers.ChoiceField(choices=Payment.TYPE_CHOICES, required=False)


class MarkPaidSerializer(serializers.Serializer):
    payout_tx_ref = serializers.CharField(max_length=100, required=False, allow_blank=True)
