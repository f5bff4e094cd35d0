import io
import os
import uuid
import boto3
from botocore.exceptions import NoCredentialsError
from flask import current_app
from eventpilot.exceptions import ExternalServiceError


def _s3_client():
    return boto3.client(
        "s3",
        aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
        aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        region_name=os.getenv("AWS_REGION"),
    )


def upload_file_to_s3(file, filename, bucket_name, content_type=None):
    s3 = _s3_client()
    extra_args = {"ACL": "public-read"}
    if content_type:
        extra_args["ContentType"] = content_type
    try:
        s3.upload_fileobj(file, bucket_name, filename, ExtraArgs=extra_args)
    except NoCredentialsError:
        raise ExternalServiceError("AWS credentials not found. Check environment variables.")
    base_url = current_app.config.get("S3_BASE_URL") or f"https://{bucket_name}.s3.amazonaws.com"
    return f"{base_url.rstrip('/')}/{filename}"


def upload_email_attachment(data: bytes, filename, content_type, event_id: int):
    """Store an email attachment under the event's prefix and return its public URL."""
    bucket = current_app.config.get("S3_BUCKET")
    if not bucket:
        raise ExternalServiceError("S3 bucket not configured")
    key = f"events/{event_id}/attachments/{uuid.uuid4().hex}/{filename or 'attachment'}"
    return upload_file_to_s3(io.BytesIO(data), key, bucket, content_type=content_type)
