from rest_framework import serializers


class NamedSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=160)
    description = serializers.CharField(required=False, allow_blank=True)


class SubCategorySerializer(serializers.Serializer):
    name = serializers.CharField(max_length=120)
    categoryId = serializers.IntegerField(source='category_id')


class SupplierSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=160)
    contactPerson = serializers.CharField(required=False, allow_blank=True, max_length=120, source='contact_person')
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    email = serializers.CharField(required=False, allow_blank=True, max_length=120)
    address = serializers.CharField(required=False, allow_blank=True, max_length=255)


class UnitOfMeasureSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=64)
    symbol = serializers.CharField(required=False, allow_blank=True, max_length=16)


class LocationSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=120)
    description = serializers.CharField(required=False, allow_blank=True)
    branchId = serializers.IntegerField(required=False, allow_null=True, source='branch_id')


class ProductSerializer(serializers.Serializer):
    productCode = serializers.CharField(max_length=64, source='product_code')
    name = serializers.CharField(max_length=160)
    description = serializers.CharField(required=False, allow_blank=True)
    categoryId = serializers.IntegerField(required=False, allow_null=True, source='category_id')
    subCategoryId = serializers.IntegerField(required=False, allow_null=True, source='sub_category_id')


class ProductUnitSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=64)
    conversionToBase = serializers.IntegerField(min_value=1, source='conversion_to_base')
    unitOfMeasureId = serializers.IntegerField(required=False, allow_null=True, source='unit_of_measure_id')
    isBase = serializers.BooleanField(required=False, source='is_base')


class ProductBatchSerializer(serializers.Serializer):
    batchNumber = serializers.CharField(max_length=64, source='batch_number')
    manufactureDate = serializers.DateField(required=False, allow_null=True, source='manufacture_date')
    expiryDate = serializers.DateField(required=False, allow_null=True, source='expiry_date')
    warningQuantity = serializers.IntegerField(required=False, min_value=0, source='warning_quantity')


class LineSerializer(serializers.Serializer):
    """One product line: product, unit, and an existing batch or a new batch number."""
    product = serializers.IntegerField()
    productUnit = serializers.IntegerField()
    batch = serializers.IntegerField(required=False, allow_null=True)
    batchNumber = serializers.CharField(required=False, allow_blank=True, max_length=64)
    expiryDate = serializers.DateField(required=False, allow_null=True)
    manufactureDate = serializers.DateField(required=False, allow_null=True)
    warningQuantity = serializers.IntegerField(required=False, min_value=0)

    def validate(self, attrs):
        if not attrs.get('batch') and not attrs.get('batchNumber'):
            raise serializers.ValidationError('batch or batchNumber is required')
        return attrs


class PurchaseItemSerializer(LineSerializer):
    quantity = serializers.IntegerField(min_value=1)
    unitPrice = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)


class PurchaseSerializer(serializers.Serializer):
    invoiceNo = serializers.CharField(max_length=64)
    supplier = serializers.IntegerField()
    notes = serializers.CharField(required=False, allow_blank=True)
    purchaseDate = serializers.DateField(required=False)
    items = PurchaseItemSerializer(many=True, allow_empty=False)


class PurchaseUpdateSerializer(serializers.Serializer):
    supplier = serializers.IntegerField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)
    items = PurchaseItemSerializer(many=True, required=False, allow_empty=False)


class RequestLineSerializer(LineSerializer):
    requestedQuantity = serializers.IntegerField(min_value=1)


class InventoryRequestSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True)
    items = RequestLineSerializer(many=True, allow_empty=False)


class InventoryRequestUpdateSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True)
    items = RequestLineSerializer(many=True, required=False, allow_empty=False)


class ApprovedItemSerializer(serializers.Serializer):
    itemId = serializers.IntegerField()
    approvedQuantity = serializers.IntegerField(min_value=0)


class StatusSerializer(serializers.Serializer):
    status = serializers.CharField()


class RequestApprovalSerializer(StatusSerializer):
    items = ApprovedItemSerializer(many=True, required=False)


class TransferLineSerializer(RequestLineSerializer):
    fromLocation = serializers.IntegerField(required=False, allow_null=True)
    toLocation = serializers.IntegerField(required=False, allow_null=True)


class StockWithdrawalSerializer(serializers.Serializer):
    kind = serializers.ChoiceField(choices=['MAIN_TO_LOCATION', 'LOCATION_TO_MAIN', 'LOCATION_TO_LOCATION'],
                                   required=False, default='MAIN_TO_LOCATION')
    notes = serializers.CharField(required=False, allow_blank=True)
    items = TransferLineSerializer(many=True, allow_empty=False)


class CorrectionLineSerializer(LineSerializer):
    quantity = serializers.IntegerField()
    notes = serializers.CharField(required=False, allow_blank=True, max_length=255)

    def validate_quantity(self, v):
        if v == 0:
            raise serializers.ValidationError('quantity must not be zero')
        return v


class CorrectionSerializer(serializers.Serializer):
    reference = serializers.CharField(max_length=64)
    reason = serializers.CharField(max_length=255)
    stock = serializers.ChoiceField(choices=['MainStock', 'LocationStock', 'PersonalStock'],
                                    required=False, default='MainStock')
    locationId = serializers.IntegerField(required=False, allow_null=True)
    holderId = serializers.IntegerField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)
    items = CorrectionLineSerializer(many=True, allow_empty=False)


class CorrectionUpdateSerializer(serializers.Serializer):
    status = serializers.CharField(required=False)
    reason = serializers.CharField(required=False, max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True)
    items = CorrectionLineSerializer(many=True, required=False, allow_empty=False)


class LedgerQuerySerializer(serializers.Serializer):
    product = serializers.IntegerField(required=False)
    batch = serializers.IntegerField(required=False)
    stockType = serializers.ChoiceField(choices=['MAIN', 'PERSONAL', 'LOCATION'], required=False)
    movementType = serializers.ChoiceField(choices=['IN', 'OUT', 'TRANSFER', 'ADJUSTMENT'], required=False)
    startDate = serializers.DateField(required=False)
    endDate = serializers.DateField(required=False)
    page = serializers.IntegerField(required=False, min_value=1)
    pageSize = serializers.IntegerField(required=False, min_value=1, max_value=500)
