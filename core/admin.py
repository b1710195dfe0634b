"""
Django admin registrations for the core models.

Refresh tokens and audit events are shown read-mostly: the token value
is never listed, only its lifecycle state.
"""

from django.contrib import admin

from .models import AuditEvent, Doctor, Hospital, Patient, RefreshToken, User, UserRole


class UserRoleInline(admin.TabularInline):
    model = UserRole
    extra = 0


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'email', 'full_name', 'is_active', 'email_confirmed', 'lockout_end')
    list_filter = ('is_active', 'email_confirmed', 'role_memberships__role')
    search_fields = ('username', 'email', 'full_name')
    exclude = ('password',)
    inlines = [UserRoleInline]


@admin.register(RefreshToken)
class RefreshTokenAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'created_at', 'expires_at', 'is_used', 'is_revoked', 'created_by_ip')
    list_filter = ('is_used', 'is_revoked')
    search_fields = ('user__username', 'created_by_ip')
    exclude = ('token', 'replaced_by_token')
    readonly_fields = ('used_at', 'revoked_at', 'revoked_by_ip')


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    list_display = ('created_at', 'action', 'user', 'object_type', 'object_id')
    list_filter = ('action',)
    search_fields = ('action', 'object_id', 'user__username')


@admin.register(Hospital)
class HospitalAdmin(admin.ModelAdmin):
    list_display = ('id', 'name', 'created_at')
    search_fields = ('name',)


@admin.register(Doctor)
class DoctorAdmin(admin.ModelAdmin):
    list_display = ('id', 'full_name', 'hospital')
    search_fields = ('full_name',)


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    list_display = ('id', 'full_name', 'date_of_birth')
    search_fields = ('full_name',)
