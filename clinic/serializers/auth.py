from rest_framework import serializers

ROLE_VALUES = ['admin', 'doctor', 'reception', 'nurse', 'laboratory', 'user', 'locked']


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField()

    def validate_username(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('Username is required')
        return v

    def validate_password(self, v):
        if not v:
            raise serializers.ValidationError('Password is required')
        return v


class UserProfileFields(serializers.Serializer):
    firstName = serializers.CharField(required=False, allow_blank=True, max_length=150, source='first_name')
    lastName = serializers.CharField(required=False, allow_blank=True, max_length=150, source='last_name')
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    image = serializers.CharField(required=False, allow_blank=True, max_length=255)
    position = serializers.CharField(required=False, allow_blank=True, max_length=64)
    experience = serializers.CharField(required=False, allow_blank=True, max_length=64)
    branchId = serializers.IntegerField(required=False, allow_null=True, min_value=0, source='branch_id')
    deadline = serializers.DateTimeField(required=False, allow_null=True)


class UserCreateSerializer(UserProfileFields):
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(write_only=True)
    role = serializers.ChoiceField(choices=ROLE_VALUES)


class UserUpdateSerializer(UserProfileFields):
    role = serializers.ChoiceField(choices=ROLE_VALUES, required=False)
    lock = serializers.BooleanField(required=False)
    isActive = serializers.BooleanField(required=False, source='is_active')


class PasswordResetSerializer(serializers.Serializer):
    password = serializers.CharField(write_only=True)


class ChangePasswordSerializer(serializers.Serializer):
    oldPassword = serializers.CharField(write_only=True)
    newPassword = serializers.CharField(write_only=True)


class LockVerifySerializer(serializers.Serializer):
    password = serializers.CharField(allow_blank=True, required=False, default='')


class BranchSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=120)
    location = serializers.CharField(required=False, allow_blank=True, max_length=255)
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32)
    managerId = serializers.IntegerField(required=False, allow_null=True, source='manager_id')
