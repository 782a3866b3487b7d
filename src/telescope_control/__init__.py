"""Telescope control: slot registry, telescope clients and scheduler.

    from telescope_control.control import TelescopeControl
"""

__version__ = "0.1.0"
