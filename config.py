import os


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or os.urandom(24)
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///gardenspace.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Simulated payment policy: cards must expire in or after this year
    CARD_EXPIRY_MIN_YEAR = int(os.environ.get('CARD_EXPIRY_MIN_YEAR', 2026))
    MAX_BOOKING_MONTHS = int(os.environ.get('MAX_BOOKING_MONTHS', 12))

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # First admin account, created on startup when both are set
    ADMIN_EMAIL = os.environ.get('ADMIN_EMAIL')
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD')


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    LOG_LEVEL = 'DEBUG'
    ADMIN_EMAIL = None
    ADMIN_PASSWORD = None
