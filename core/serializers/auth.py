from rest_framework import serializers


class RegisterSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    email = serializers.EmailField()
    password = serializers.CharField(trim_whitespace=False)
    full_name = serializers.CharField(max_length=255)
    role = serializers.CharField(max_length=32)

    def validate_username(self, v):
        v = (v or '').strip()
        if not v:
            raise serializers.ValidationError('Username is required.')
        return v


class LoginSerializer(serializers.Serializer):
    username_or_email = serializers.CharField()
    password = serializers.CharField(trim_whitespace=False)

    def validate_password(self, v):
        if not v:
            raise serializers.ValidationError('Password is required.')
        return v


class RefreshTokenSerializer(serializers.Serializer):
    token = serializers.CharField()
    refresh_token = serializers.CharField()


class RevokeTokenSerializer(serializers.Serializer):
    refresh_token = serializers.CharField()


class ForgotPasswordSerializer(serializers.Serializer):
    email = serializers.EmailField()


class _NewPasswordSerializer(serializers.Serializer):
    new_password = serializers.CharField(trim_whitespace=False)
    confirm_password = serializers.CharField(trim_whitespace=False)

    def validate(self, attrs):
        if attrs['new_password'] != attrs['confirm_password']:
            raise serializers.ValidationError({'confirm_password': 'Passwords do not match.'})
        return attrs


class ResetPasswordSerializer(_NewPasswordSerializer):
    email = serializers.EmailField()
    token = serializers.CharField()


class ChangePasswordSerializer(_NewPasswordSerializer):
    current_password = serializers.CharField(trim_whitespace=False)


class ConfirmEmailSerializer(serializers.Serializer):
    user_id = serializers.UUIDField()
    token = serializers.CharField()
