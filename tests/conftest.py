# ===============================================================================
# PYTEST CONFIGURATION FOR THE IT SUPPORT DESK
# ===============================================================================
"""
Global test configuration.

Test Structure:
- tests/ mirrors apps/ structure for app-specific tests
- Naming convention: test_{app}_{feature}.py
- Shared builders live in tests/factories/

Run all tests: pytest tests/
"""

import os

import django


def pytest_configure():
    """Configure Django settings for pytest"""
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.test')

    django.setup()
