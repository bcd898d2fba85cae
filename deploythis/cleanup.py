"""
Empties S3 buckets and ECR repositories so Terraform can destroy them.
"""

from typing import List

import boto3
from botocore.exceptions import ClientError

from .progress_indicator import ProgressIndicator

# batch_delete_image accepts at most 100 image ids per call
ECR_BATCH_SIZE = 100


class AWSResourceCleanup:
    def __init__(self, session: boto3.Session, dry_run: bool = False):
        self.session = session
        self.dry_run = dry_run
        self.s3 = session.client("s3")
        self.ecr = session.client("ecr")
        self.progress = ProgressIndicator(0)

        if dry_run:
            self.progress.info("DRY RUN MODE: No resources will be deleted")

    def _dry_run_empty_bucket(self, bucket_name: str) -> bool:
        """Show what would be deleted in dry run mode."""
        response = self.s3.list_objects_v2(Bucket=bucket_name)
        objects = response.get("Contents", [])
        print(
            f"[DRY RUN] Would delete {len(objects)} objects from bucket: {bucket_name}"
        )
        for obj in objects[:5]:
            print(f"  - {obj['Key']}")
        if len(objects) > 5:
            print(f"  ... and {len(objects) - 5} more objects")
        return True

    def _delete_current_objects(self, bucket_name: str) -> int:
        """Delete all current objects in the bucket."""
        paginator = self.s3.get_paginator("list_objects_v2")

        delete_count = 0
        for page in paginator.paginate(Bucket=bucket_name):
            objects = [{"Key": obj["Key"]} for obj in page.get("Contents", [])]
            if objects:
                self.s3.delete_objects(Bucket=bucket_name, Delete={"Objects": objects})
                delete_count += len(objects)
        return delete_count

    def _delete_object_versions(self, bucket_name: str) -> int:
        """Delete all object versions and delete markers."""
        paginator = self.s3.get_paginator("list_object_versions")

        delete_count = 0
        for page in paginator.paginate(Bucket=bucket_name):
            versions = [
                {"Key": obj["Key"], "VersionId": obj["VersionId"]}
                for obj in page.get("Versions", []) + page.get("DeleteMarkers", [])
            ]
            if versions:
                self.s3.delete_objects(Bucket=bucket_name, Delete={"Objects": versions})
                delete_count += len(versions)
        return delete_count

    def empty_s3_bucket(self, bucket_name: str) -> bool:
        """Empty all objects, versions and delete markers from an S3 bucket."""
        if not bucket_name:
            self.progress.warning("No S3 bucket configured, skipping.")
            return True

        try:
            if self.dry_run:
                return self._dry_run_empty_bucket(bucket_name)

            self.progress.info(f"Emptying S3 bucket: {bucket_name}")
            delete_count = self._delete_current_objects(bucket_name)
            delete_count += self._delete_object_versions(bucket_name)
            self.progress.success(
                f"Emptied bucket {bucket_name} (deleted {delete_count} objects)"
            )
            return True

        except ClientError as e:
            if e.response["Error"]["Code"] == "NoSuchBucket":
                self.progress.info(f"Bucket {bucket_name} does not exist")
                return True
            self.progress.error(f"Error emptying bucket {bucket_name}: {e}")
            return False

    def _list_image_ids(self, repository_name: str) -> List[dict]:
        paginator = self.ecr.get_paginator("list_images")

        image_ids = []
        for page in paginator.paginate(repositoryName=repository_name):
            image_ids.extend(page.get("imageIds", []))
        return image_ids

    def delete_ecr_images(self, repository_name: str) -> bool:
        """Delete every image from an ECR repository."""
        if not repository_name:
            self.progress.warning("No ECR repository configured, skipping.")
            return True

        try:
            image_ids = self._list_image_ids(repository_name)
            if self.dry_run:
                print(
                    f"[DRY RUN] Would delete {len(image_ids)} images from repository: {repository_name}"
                )
                return True

            self.progress.info(f"Deleting images from ECR repository: {repository_name}")
            for start in range(0, len(image_ids), ECR_BATCH_SIZE):
                self.ecr.batch_delete_image(
                    repositoryName=repository_name,
                    imageIds=image_ids[start : start + ECR_BATCH_SIZE],
                )
            self.progress.success(
                f"Deleted {len(image_ids)} images from {repository_name}"
            )
            return True

        except ClientError as e:
            if e.response["Error"]["Code"] == "RepositoryNotFoundException":
                self.progress.info(f"Repository {repository_name} does not exist")
                return True
            self.progress.error(f"Error deleting images from {repository_name}: {e}")
            return False
