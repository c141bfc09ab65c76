"""
User models for the IT Support Desk
Email-based accounts with employee and service provider profiles.
"""

from __future__ import annotations

from typing import Any, ClassVar

from django.contrib.auth.models import AbstractUser, BaseUserManager
from django.db import models
from django.utils.translation import gettext_lazy as _


class UserManager(BaseUserManager):
    """Custom user manager for email-based authentication"""

    def create_user(self, email: str, password: str | None = None, **extra_fields: Any) -> User:
        """Create and return a regular user with email and password"""
        if not email:
            raise ValueError('The Email field must be set')
        email = self.normalize_email(email)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email: str, password: str | None = None, **extra_fields: Any) -> User:
        """Create and return a superuser with email and password"""
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('user_type', User.USER_TYPE_ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(email, password, **extra_fields)


class User(AbstractUser):
    """
    Support desk account.
    The user type decides which profile (employee or service provider) hangs off the account.
    """

    USER_TYPE_EMPLOYEE = 'employee'
    USER_TYPE_PROVIDER = 'service_provider'
    USER_TYPE_ADMIN = 'admin'

    USER_TYPE_CHOICES: ClassVar[tuple[tuple[str, str], ...]] = (
        (USER_TYPE_EMPLOYEE, _('Employee')),
        (USER_TYPE_PROVIDER, _('Service Provider')),
        (USER_TYPE_ADMIN, _('Administrator')),
    )

    username = None  # Remove username field, using email instead
    email = models.EmailField(_('email address'), unique=True)
    user_type = models.CharField(
        max_length=20,
        choices=USER_TYPE_CHOICES,
        default=USER_TYPE_EMPLOYEE,
        verbose_name=_('User Type'),
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS: ClassVar[list[str]] = []

    class Meta:
        db_table = 'users'
        verbose_name = _('User')
        verbose_name_plural = _('Users')
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=['user_type', 'is_active'], name='idx_users_type_active'),
        )

    def __str__(self) -> str:
        return self.email

    @property
    def is_admin(self) -> bool:
        return self.user_type == self.USER_TYPE_ADMIN

    @property
    def is_service_provider(self) -> bool:
        return self.user_type == self.USER_TYPE_PROVIDER

    def get_display_name(self) -> str:
        """Best human name for emails and history entries"""
        employee = getattr(self, 'employee_profile', None)
        if employee is not None:
            return employee.full_name
        provider = getattr(self, 'provider_profile', None)
        if provider is not None:
            return provider.provider_name
        return self.get_full_name() or self.email


class Department(models.Model):
    """Organisational unit an employee belongs to"""

    name = models.CharField(max_length=100, verbose_name=_('Department Name'))
    category = models.CharField(max_length=100, blank=True, verbose_name=_('Category'))

    class Meta:
        db_table = 'departments'
        verbose_name = _('Department')
        verbose_name_plural = _('Departments')
        ordering: ClassVar[list[str]] = ['category', 'name']

    def __str__(self) -> str:
        return self.name


class Employee(models.Model):
    """Employee profile - the party that opens tickets"""

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='employee_profile',
        verbose_name=_('User'),
    )
    first_name = models.CharField(max_length=100, verbose_name=_('First Name'))
    last_name = models.CharField(max_length=100, verbose_name=_('Last Name'))
    department = models.ForeignKey(
        Department,
        on_delete=models.PROTECT,
        related_name='employees',
        verbose_name=_('Department'),
    )
    contact_number = models.CharField(max_length=20, blank=True, verbose_name=_('Contact Number'))

    class Meta:
        db_table = 'employees'
        verbose_name = _('Employee')
        verbose_name_plural = _('Employees')
        ordering: ClassVar[list[str]] = ['last_name', 'first_name']

    def __str__(self) -> str:
        return self.full_name

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ServiceProvider(models.Model):
    """Service provider profile - the party tickets are assigned to"""

    user = models.OneToOneField(
        User,
        on_delete=models.CASCADE,
        related_name='provider_profile',
        verbose_name=_('User'),
    )
    provider_name = models.CharField(max_length=150, verbose_name=_('Provider Name'))
    specialization = models.CharField(max_length=150, blank=True, verbose_name=_('Specialization'))
    contact_number = models.CharField(max_length=20, blank=True, verbose_name=_('Contact Number'))

    # Capacity
    is_available = models.BooleanField(default=True, verbose_name=_('Available'))
    max_concurrent_tickets = models.PositiveIntegerField(
        default=5,
        verbose_name=_('Max Concurrent Tickets'),
    )

    # Rating aggregate - always recomputed from the full rating set
    rating_average = models.DecimalField(
        max_digits=3,
        decimal_places=2,
        null=True,
        blank=True,
        verbose_name=_('Average Rating'),
    )
    total_ratings = models.PositiveIntegerField(default=0, verbose_name=_('Total Ratings'))

    class Meta:
        db_table = 'service_providers'
        verbose_name = _('Service Provider')
        verbose_name_plural = _('Service Providers')
        ordering: ClassVar[list[str]] = ['provider_name']

    def __str__(self) -> str:
        return self.provider_name
