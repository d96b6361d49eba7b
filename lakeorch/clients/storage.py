"""Storage target client backing the datalake storage gate."""

from lakeorch.errors import QueryError
from lakeorch.runner import CommandRunner
from lakeorch.utils import truncate

_MISSING_MARKERS = ("Not Found", "NoSuchBucket", "(404)")


class S3BucketClient:
    """Check that an S3 bucket exists and answers for the current credentials."""

    def __init__(self, runner: CommandRunner, region: str | None = None):
        self.runner = runner
        self.region = region

    def exists(self, bucket: str) -> bool:
        """
        Returns:
            True if head-bucket succeeds, False if the bucket does not exist

        Raises:
            QueryError: For any other failure (credentials, 403, network)
        """
        args = ["s3api", "head-bucket", "--bucket", bucket]
        if self.region:
            args += ["--region", self.region]
        result = self.runner.run("aws", args)
        if result.ok:
            return True
        if any(marker in result.output for marker in _MISSING_MARKERS):
            return False
        raise QueryError(f"head-bucket {bucket} failed: {truncate(result.output, 300)}")
