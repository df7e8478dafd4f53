"""osskit - Blocking client for the Object Storage Service.

Example:

    from osskit import ACL, Client, Region

    with Client.from_env(region=Region.HANGZHOU) as oss:
        bucket = oss.bucket("backups")
        bucket.put("db/dump.sql", data, "text/plain", ACL.PRIVATE)
        if bucket.exists("db/dump.sql"):
            print(bucket.signed_url("db/dump.sql", expires))
"""

from loguru import logger

from osskit.client import Bucket, Client
from osskit.config import ClientConfig, Credentials, resolve_client
from osskit.errors import (
    DecodeError,
    ErrorKind,
    InvalidEndpointError,
    OSSError,
    OSSKitError,
    RequestFailed,
    classify,
    should_retry,
)
from osskit.models import (
    ACL,
    AccessControlPolicy,
    CopyObjectResult,
    CopyOptions,
    Delete,
    Key,
    ListResult,
    ObjectId,
    Owner,
    PutOptions,
    ServiceListing,
    WebsiteConfiguration,
)
from osskit.regions import Region
from osskit.retry import AttemptStrategy

# Library default: silent until osskit.logging.setup_logging() is called
logger.disable("osskit")

__all__ = [
    "ACL",
    "AccessControlPolicy",
    "AttemptStrategy",
    "Bucket",
    "Client",
    "ClientConfig",
    "CopyObjectResult",
    "CopyOptions",
    "Credentials",
    "DecodeError",
    "Delete",
    "ErrorKind",
    "InvalidEndpointError",
    "Key",
    "ListResult",
    "OSSError",
    "OSSKitError",
    "ObjectId",
    "Owner",
    "PutOptions",
    "Region",
    "RequestFailed",
    "ServiceListing",
    "WebsiteConfiguration",
    "classify",
    "resolve_client",
    "should_retry",
]
