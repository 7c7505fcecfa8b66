"""
storefront/config.py - Application configuration and Firebase initialization.

This module defines a Pydantic BaseSettings class to load configuration from environment,
and lazily initializes the Firebase Admin SDK (Firestore DB, Storage) using the provided credentials.
Routers receive the Firestore client and the storage bucket through the `get_db` / `get_bucket`
dependencies, so the SDK is only touched when a request (or the scheduler) actually needs it.
"""
from functools import lru_cache
from typing import Optional

import firebase_admin
from firebase_admin import credentials, firestore, storage
from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""
    firebase_cred_file: str = Field('firebase_service_account.json')
    firebase_project_id: str = Field('')
    firebase_storage_bucket: str = Field('')

    # Firebase credentials from environment variables (for Cloud Run)
    firebase_private_key_id: Optional[str] = None
    firebase_private_key: Optional[str] = None
    firebase_client_email: Optional[str] = None
    firebase_client_id: Optional[str] = None
    firebase_auth_uri: Optional[str] = None
    firebase_token_uri: Optional[str] = None
    firebase_auth_provider_x509_cert_url: Optional[str] = None
    firebase_client_x509_cert_url: Optional[str] = None

    # PayHere card gateway
    payhere_merchant_id: str = Field('')
    payhere_merchant_secret: str = Field('')
    payhere_currency: str = Field('LKR')
    payhere_success_code: int = Field(2)
    payhere_failure_action: str = Field('delete', description="delete | mark_failed")

    # text.lk SMS gateway
    sms_api_url: str = Field('https://app.text.lk/api/http/sms/send')
    sms_api_token: str = Field('')
    sms_sender_id: str = Field('TextLKDemo')
    sms_timeout: int = Field(10)
    owner_phone: Optional[str] = None
    invoice_url_template: str = Field('https://jcreations.lk/invoice/{order_id}')

    # Guest cart cookie
    cart_cookie_name: str = Field('cart_session')
    cart_cookie_days: int = Field(30)

    # Weekly sweep of stale carts and abandoned card orders
    cleanup_enabled: bool = Field(True)
    stale_after_days: int = Field(14)

    debug: bool = Field(False)
    log_level: str = Field('INFO')
    allowed_origins: str = Field('*')  # Comma-separated list or '*' for all

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Load settings from environment (.env file, etc.)
settings = Settings()


@lru_cache
def get_firebase_app() -> firebase_admin.App:
    """Initialize the Firebase Admin SDK once per process."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if all([
        settings.firebase_private_key_id,
        settings.firebase_private_key,
        settings.firebase_client_email,
        settings.firebase_client_id,
        settings.firebase_auth_uri,
        settings.firebase_token_uri,
        settings.firebase_auth_provider_x509_cert_url,
        settings.firebase_client_x509_cert_url,
    ]):
        # Use environment variables for Firebase credentials (Cloud Run)
        cred = credentials.Certificate({
            "type": "service_account",
            "project_id": settings.firebase_project_id,
            "private_key_id": settings.firebase_private_key_id,
            "private_key": settings.firebase_private_key.replace("\\n", "\n"),
            "client_email": settings.firebase_client_email,
            "client_id": settings.firebase_client_id,
            "auth_uri": settings.firebase_auth_uri,
            "token_uri": settings.firebase_token_uri,
            "auth_provider_x509_cert_url": settings.firebase_auth_provider_x509_cert_url,
            "client_x509_cert_url": settings.firebase_client_x509_cert_url,
        })
    else:
        # Use service account file (local development)
        cred = credentials.Certificate(settings.firebase_cred_file)

    return firebase_admin.initialize_app(cred, {
        'projectId': settings.firebase_project_id,
        'storageBucket': settings.firebase_storage_bucket,
    })


def get_db():
    """FastAPI dependency: Firestore client."""
    return firestore.client(get_firebase_app())


def get_bucket():
    """FastAPI dependency: default Firebase Storage bucket."""
    return storage.bucket(app=get_firebase_app())


def get_settings() -> Settings:
    return settings
