"""OSS regions and their endpoints."""

from __future__ import annotations

from enum import StrEnum


class Region(StrEnum):
    HANGZHOU = "oss-cn-hangzhou"
    QINGDAO = "oss-cn-qingdao"
    BEIJING = "oss-cn-beijing"
    HONGKONG = "oss-cn-hongkong"
    SHENZHEN = "oss-cn-shenzhen"
    SHANGHAI = "oss-cn-shanghai"
    US_WEST_1 = "oss-us-west-1"
    AP_SOUTHEAST_1 = "oss-ap-southeast-1"

    def endpoint(self, internal: bool = False) -> str:
        """Base URL for this region.

        Internal endpoints are only reachable from inside the provider's network.
        """
        if internal:
            return f"http://{self.value}-internal.aliyuncs.com"
        return f"http://{self.value}.aliyuncs.com"

    @property
    def host(self) -> str:
        return f"{self.value}.aliyuncs.com"


DEFAULT_REGION = Region.HANGZHOU

__all__ = ["DEFAULT_REGION", "Region"]
