"""
rubyvps

Idempotent provisioning of an Ubuntu VPS for Ruby web applications and
registration of individual applications (directory, database, Nginx +
Passenger virtual host, optional Let's Encrypt certificate).
"""

APP_NAME: str = "Ruby VPS"
VERSION: str = "1.0.0"
LOGGER_NAME: str = "rubyvps"
