import json
import logging
from typing import Any

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


def get_s3_client():
    """Create S3 client."""
    return boto3.client("s3")


def read_json_from_s3(bucket: str, key: str) -> dict[str, Any] | None:
    """Read a JSON document from S3, returning None if the key does not exist."""
    s3 = get_s3_client()
    try:
        response = s3.get_object(Bucket=bucket, Key=key)
    except ClientError as e:
        if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
            return None
        raise

    content = response["Body"].read()
    return json.loads(content.decode("utf-8"))


def upload_json_to_s3(data: dict[str, Any], bucket: str, key: str) -> None:
    """Upload a JSON document to S3 in a single put."""
    body = json.dumps(data, default=str, ensure_ascii=False)

    s3 = get_s3_client()
    s3.put_object(
        Bucket=bucket,
        Key=key,
        Body=body.encode("utf-8"),
        ContentType="application/json",
    )
    logger.info("Uploaded state to s3://%s/%s", bucket, key)
