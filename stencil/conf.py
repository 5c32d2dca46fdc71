"""
Django settings bootstrap.

The formatting filters use django.utils (dateformat, numberformat), which read
django.conf.settings. A host project that already configured Django keeps its
own settings; anywhere else the engine configures the minimal set below the
first time an Engine is built.

settings.configure() applies to the whole process and can only happen once.
Configure Django yourself before building an Engine if you need settings of
your own.
"""
import os

from django.conf import settings

DEFAULT_SETTINGS = {
    'USE_I18N': False,
    'USE_TZ': False,
    'USE_THOUSAND_SEPARATOR': False,
}


def configure(**options):
    """
    Configure django.conf.settings for standalone use. Return True if this
    call did the configuring, False if settings were already provided.
    """
    if settings.configured or os.environ.get('DJANGO_SETTINGS_MODULE'):
        return False
    settings.configure(**{**DEFAULT_SETTINGS, **options})
    return True
