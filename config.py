"""
ALIA Configuration
Supports AWS Parameter Store for production secrets
"""
import os

import boto3
from botocore.exceptions import BotoCoreError, ClientError


def get_parameter(name: str, default: str = "") -> str:
    """Get parameter from AWS Parameter Store or environment"""
    # Environment variable takes precedence
    env_key = name.upper().replace("-", "_").replace("/", "_")
    if env_key in os.environ:
        return os.environ[env_key]

    if os.environ.get("USE_PARAMETER_STORE"):
        try:
            ssm = boto3.client("ssm", region_name=os.environ.get("AWS_REGION", "sa-east-1"))
            path = os.environ.get("PARAMETER_STORE_PATH", "/alia/prod/")
            response = ssm.get_parameter(Name=f"{path}{name}", WithDecryption=True)
            return response["Parameter"]["Value"]
        except (BotoCoreError, ClientError) as e:
            print(f"Warning: Could not load {name} from Parameter Store: {e}")

    return default


def _database_url() -> str:
    url = os.environ.get("DATABASE_URL", "sqlite:///alia.db")
    # Fix Render's postgres:// URL
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


class Config:
    """Base configuration"""
    # Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-change-in-production")

    # Database
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}

    # Session
    SESSION_PERMANENT = False
    PERMANENT_SESSION_LIFETIME = 86400

    # Security
    WTF_CSRF_ENABLED = True
    WTF_CSRF_TIME_LIMIT = 3600
    API_TOKEN_MAX_AGE = 86400

    # Uploads
    MAX_IMAGE_BYTES = 10 * 1024 * 1024
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024

    # OpenAI
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4.1")
    OPENAI_TIMEOUT = float(os.environ.get("OPENAI_TIMEOUT", "120"))

    # AWS
    AWS_REGION = os.environ.get("AWS_REGION", "sa-east-1")
    AWS_S3_BUCKET = os.environ.get("AWS_S3_BUCKET", "")
    AWS_S3_PUBLIC_URL = os.environ.get("AWS_S3_PUBLIC_URL", "")

    # Stripe
    STRIPE_PUBLISHABLE_KEY = os.environ.get("STRIPE_PUBLISHABLE_KEY", "")
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_PRICE_ID = os.environ.get("STRIPE_PRICE_ID", "")
    APP_URL = os.environ.get("APP_URL", "http://localhost:5000/")

    # Profile replication lag after sign-up/login (seconds)
    PROFILE_RETRY_DELAY = float(os.environ.get("PROFILE_RETRY_DELAY", "2"))

    # Report layout defaults, pending product confirmation
    REPORT_ANALYSIS_SHARE = float(os.environ.get("REPORT_ANALYSIS_SHARE", "0.55"))
    REPORT_PATIENT_MAX_LINES = int(os.environ.get("REPORT_PATIENT_MAX_LINES", "2"))

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # App Version
    APP_VERSION = os.environ.get("APP_VERSION", "2025.6")
    BUILD_TIME = os.environ.get("BUILD_TIME", "")
    GIT_COMMIT = os.environ.get("GIT_COMMIT", "")


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    # Override with Parameter Store in production
    SECRET_KEY = get_parameter("secret-key", Config.SECRET_KEY)
    OPENAI_API_KEY = get_parameter("openai-api-key", Config.OPENAI_API_KEY)
    STRIPE_SECRET_KEY = get_parameter("stripe-secret-key", Config.STRIPE_SECRET_KEY)
    STRIPE_WEBHOOK_SECRET = get_parameter("stripe-webhook-secret", Config.STRIPE_WEBHOOK_SECRET)
    AWS_S3_BUCKET = get_parameter("aws-s3-bucket", Config.AWS_S3_BUCKET)


class TestingConfig(Config):
    """Testing configuration"""
    DEBUG = True
    TESTING = True
    SECRET_KEY = "test-secret-key"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    WTF_CSRF_ENABLED = False
    PROFILE_RETRY_DELAY = 0
    STRIPE_SECRET_KEY = "sk_test_alia"
    STRIPE_WEBHOOK_SECRET = "whsec_test_alia"
    STRIPE_PRICE_ID = "price_premium_monthly"
    APP_URL = "http://localhost/"
    AWS_S3_BUCKET = "alia-test-exams"
    AWS_S3_PUBLIC_URL = ""
    AWS_REGION = "sa-east-1"
    OPENAI_API_KEY = ""


config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}


def get_config(env: str = None):
    """Get configuration class by environment name"""
    env = env or os.environ.get("FLASK_ENV", "development")
    return config.get(env, DevelopmentConfig)
