from rest_framework import serializers


class DocumentItemSerializer(serializers.Serializer):
    service = serializers.IntegerField()
    description = serializers.CharField(required=False, allow_blank=True, max_length=255)
    quantity = serializers.IntegerField(required=False, min_value=1, default=1)
    price = serializers.DecimalField(required=False, allow_null=True, max_digits=12, decimal_places=2, min_value=0)


class DocumentCreateSerializer(serializers.Serializer):
    """Invoice or credit payload. Status values are checked per document type."""
    items = DocumentItemSerializer(many=True)
    status = serializers.CharField()
    currentPayment = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, source='current_payment')
    organizationId = serializers.IntegerField(required=False, allow_null=True, source='organization_id')

    def validate_items(self, v):
        if not v:
            raise serializers.ValidationError('At least one item is required')
        return v


class DocumentUpdateSerializer(serializers.Serializer):
    items = DocumentItemSerializer(many=True, required=False)
    status = serializers.CharField(required=False)
    currentPayment = serializers.DecimalField(required=False, max_digits=12, decimal_places=2, min_value=0,
                                              source='current_payment')
    organizationId = serializers.IntegerField(required=False, allow_null=True, source='organization_id')


class PaymentConfirmSerializer(serializers.Serializer):
    amount = serializers.DecimalField(required=False, allow_null=True, max_digits=12, decimal_places=2)
    receipt = serializers.BooleanField(required=False, default=True)


class BulkCreditConfirmSerializer(serializers.Serializer):
    creditsToUpdate = serializers.ListField(child=serializers.DictField(), allow_empty=True)

    def validate_creditsToUpdate(self, v):
        if not v:
            raise serializers.ValidationError('No credits to update')
        return v


class DateRangeSerializer(serializers.Serializer):
    startDate = serializers.DateField()
    endDate = serializers.DateField()

    def validate(self, attrs):
        if attrs['startDate'] > attrs['endDate']:
            raise serializers.ValidationError({'endDate': 'endDate must not be before startDate'})
        return attrs


class OptionalDateRangeSerializer(serializers.Serializer):
    startDate = serializers.DateField(required=False)
    endDate = serializers.DateField(required=False)
    branch = serializers.CharField(required=False, allow_blank=True)


class ServiceCategorySerializer(serializers.Serializer):
    name = serializers.CharField(max_length=120)


class ServiceSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=120)
    description = serializers.CharField(required=False, allow_blank=True)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    categoryId = serializers.IntegerField(required=False, allow_null=True, source='category_id')


class OrganizationSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=160)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    address = serializers.CharField(required=False, allow_blank=True, max_length=255)
    branchId = serializers.IntegerField(required=False, allow_null=True, source='branch_id')


class OrgServiceSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=120)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    organizationId = serializers.IntegerField(required=False, allow_null=True, source='organization_id')


class ExpenseSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=255)
    category = serializers.CharField(required=False, allow_blank=True, max_length=64)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    expenseDate = serializers.DateField(required=False, source='expense_date')

    def validate_amount(self, v):
        if v <= 0:
            raise serializers.ValidationError('Amount must be greater than zero')
        return v


class ProformaSerializer(serializers.Serializer):
    items = DocumentItemSerializer(many=True)

    def validate_items(self, v):
        if not v:
            raise serializers.ValidationError('At least one item is required')
        return v
