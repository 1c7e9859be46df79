"""Security misconfiguration checks."""

from __future__ import annotations

import boto3
import structlog
from botocore.exceptions import ClientError

from aws_cost_watchdog.config.schema import SecurityRiskDetectorConfig
from aws_cost_watchdog.detectors.base import Detector, Scan, paginate
from aws_cost_watchdog.models.flags import Category, DetectorInput, RedFlag, Severity

logger = structlog.get_logger()

WORLD_IPV4 = "0.0.0.0/0"
WORLD_IPV6 = "::/0"

# IpProtocol values that carry ports; "-1" means every protocol and port
_PORT_PROTOCOLS = {"tcp", "udp", "6", "17"}


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def _world_cidrs(permission: dict) -> list[str]:
    """World-open CIDRs of an ingress permission."""
    cidrs = [
        r["CidrIp"] for r in permission.get("IpRanges", []) if r.get("CidrIp") == WORLD_IPV4
    ]
    cidrs += [
        r["CidrIpv6"]
        for r in permission.get("Ipv6Ranges", [])
        if r.get("CidrIpv6") == WORLD_IPV6
    ]
    return cidrs


def _covers_port(permission: dict, port: int) -> bool:
    protocol = str(permission.get("IpProtocol", ""))
    if protocol == "-1":
        return True
    if protocol not in _PORT_PROTOCOLS:
        return False
    from_port = permission.get("FromPort")
    to_port = permission.get("ToPort", from_port)
    if from_port is None:
        return False
    return from_port <= port <= to_port


def revoke_ingress_command(group_id: str, permission: dict, port: int, cidr: str) -> str:
    """AWS CLI command removing the world-open rule that exposes `port`."""
    protocol = str(permission.get("IpProtocol", "tcp"))
    if cidr == WORLD_IPV6:
        from_port = permission.get("FromPort", -1)
        to_port = permission.get("ToPort", -1)
        return (
            f"aws ec2 revoke-security-group-ingress --group-id {group_id} "
            f"--ip-permissions IpProtocol={protocol},FromPort={from_port},"
            f"ToPort={to_port},Ipv6Ranges=[{{CidrIpv6={cidr}}}]"
        )
    if protocol == "-1":
        return (
            f"aws ec2 revoke-security-group-ingress --group-id {group_id} "
            f"--protocol -1 --cidr {cidr}"
        )
    from_port = permission.get("FromPort", port)
    to_port = permission.get("ToPort", from_port)
    port_spec = str(from_port) if from_port == to_port else f"{from_port}-{to_port}"
    return (
        f"aws ec2 revoke-security-group-ingress --group-id {group_id} "
        f"--protocol {protocol} --port {port_spec} --cidr {cidr}"
    )


class SecurityRiskDetector(Detector):
    """
    Detect security misconfigurations.

    These are deterministic policy checks with a fixed severity per rule:
    world-open sensitive ports, public databases and public buckets are
    critical; missing encryption is a warning.
    """

    detector_id = "security-risk-detector"
    category = Category.SECURITY_RISK
    client_attributes = ("ec2_client", "rds_client", "s3_client")

    def __init__(
        self,
        config: SecurityRiskDetectorConfig | None = None,
        region: str = "us-east-1",
        ec2_client: boto3.client | None = None,
        rds_client: boto3.client | None = None,
        s3_client: boto3.client | None = None,
    ):
        """
        Initialize the security risk detector.

        Args:
            config: Security risk detector configuration.
            region: AWS region to scan.
            ec2_client: Optional boto3 EC2 client.
            rds_client: Optional boto3 RDS client.
            s3_client: Optional boto3 S3 client.
        """
        super().__init__(config or SecurityRiskDetectorConfig())
        self.region = region
        self._ec2_client = ec2_client
        self._rds_client = rds_client
        self._s3_client = s3_client

    @property
    def ec2_client(self) -> boto3.client:
        """Get or create EC2 client."""
        if self._ec2_client is None:
            self._ec2_client = boto3.client("ec2", region_name=self.region)
        return self._ec2_client

    @property
    def rds_client(self) -> boto3.client:
        """Get or create RDS client."""
        if self._rds_client is None:
            self._rds_client = boto3.client("rds", region_name=self.region)
        return self._rds_client

    @property
    def s3_client(self) -> boto3.client:
        """Get or create S3 client."""
        if self._s3_client is None:
            self._s3_client = boto3.client("s3", region_name=self.region)
        return self._s3_client

    def scans(self, detector_input: DetectorInput) -> list[tuple[str, Scan]]:
        scans: list[tuple[str, Scan]] = []
        if self.config.check_security_groups:
            scans.append(("open_security_groups", self.detect_open_security_groups))
        if self.config.check_public_access:
            scans.append(("public_rds_instances", self.detect_public_rds_instances))
        if self.config.check_encryption:
            scans.append(("unencrypted_ebs_volumes", self.detect_unencrypted_ebs_volumes))
            scans.append(("unencrypted_s3_buckets", self.detect_unencrypted_s3_buckets))
        if self.config.check_public_access:
            scans.append(("public_s3_buckets", self.detect_public_s3_buckets))
        return scans

    def _flag(self, **kwargs) -> RedFlag:
        return RedFlag(category=self.category, **kwargs)

    def detect_open_security_groups(self) -> list[RedFlag]:
        """
        Flag sensitive ports reachable from anywhere.

        One flag per group and port, even when several rules (IPv4 and IPv6,
        overlapping ranges, all-traffic) expose the same port. A group is only
        flagged when its exposed sensitive port count exceeds
        max_open_ports_public.
        """
        sensitive_ports = self.config.sensitive_ports
        allowed = self.config.thresholds.max_open_ports_public
        red_flags: list[RedFlag] = []

        for group in paginate(self.ec2_client, "describe_security_groups", "SecurityGroups"):
            group_id = group.get("GroupId", "unknown")
            # port -> (permission, cidr) of the first rule exposing it
            exposed: dict[int, tuple[dict, str]] = {}

            for permission in group.get("IpPermissions", []):
                cidrs = _world_cidrs(permission)
                if not cidrs:
                    continue
                for port in sensitive_ports:
                    if port not in exposed and _covers_port(permission, port):
                        exposed[port] = (permission, cidrs[0])

            if len(exposed) <= allowed:
                continue

            for port, (permission, cidr) in sorted(exposed.items()):
                port_name = sensitive_ports[port]
                red_flags.append(
                    self._flag(
                        severity=Severity.CRITICAL,
                        title=f"Security group {group_id} allows {port_name} from anywhere",
                        description=(
                            f'Security group "{group.get("GroupName", group_id)}" allows '
                            f"inbound {port_name} (port {port}) from {cidr}. This exposes "
                            f"attached resources to the whole internet."
                        ),
                        resource_id=group_id,
                        resource_type="Security Group",
                        auto_fixable=True,
                        fix_command=revoke_ingress_command(group_id, permission, port, cidr),
                        metadata={
                            "port": port,
                            "service": port_name,
                            "protocol": permission.get("IpProtocol"),
                            "cidr": cidr,
                            "group_name": group.get("GroupName"),
                            "vpc_id": group.get("VpcId"),
                        },
                    )
                )

        return red_flags

    def detect_public_rds_instances(self) -> list[RedFlag]:
        """Flag RDS instances with public accessibility enabled."""
        red_flags: list[RedFlag] = []

        for db_instance in paginate(self.rds_client, "describe_db_instances", "DBInstances"):
            if not db_instance.get("PubliclyAccessible"):
                continue

            db_instance_id = db_instance.get("DBInstanceIdentifier", "unknown")
            red_flags.append(
                self._flag(
                    severity=Severity.CRITICAL,
                    title=f"RDS instance {db_instance_id} is publicly accessible",
                    description=(
                        f"RDS instance {db_instance_id} has public accessibility enabled, "
                        f"so its endpoint resolves to a public address."
                    ),
                    resource_id=db_instance_id,
                    resource_type="RDS",
                    auto_fixable=True,
                    fix_command=(
                        f"aws rds modify-db-instance --db-instance-identifier {db_instance_id} "
                        f"--no-publicly-accessible --apply-immediately --region {self.region}"
                    ),
                    metadata={
                        "engine": db_instance.get("Engine"),
                        "engine_version": db_instance.get("EngineVersion"),
                        "multi_az": db_instance.get("MultiAZ"),
                        "endpoint": db_instance.get("Endpoint", {}).get("Address"),
                    },
                )
            )

        return red_flags

    def detect_unencrypted_ebs_volumes(self) -> list[RedFlag]:
        """Flag EBS volumes without encryption at rest."""
        red_flags: list[RedFlag] = []

        for volume in paginate(self.ec2_client, "describe_volumes", "Volumes"):
            if volume.get("Encrypted"):
                continue

            volume_id = volume.get("VolumeId", "unknown")
            size_gb = volume.get("Size", 0)
            red_flags.append(
                self._flag(
                    severity=Severity.WARNING,
                    title=f"EBS volume {volume_id} is not encrypted",
                    description=(
                        f"EBS volume {volume_id} ({size_gb} GB) is not encrypted. Copy a "
                        f"snapshot with encryption enabled and restore from it."
                    ),
                    resource_id=volume_id,
                    resource_type="EBS Volume",
                    auto_fixable=False,
                    fix_command=f"aws ec2 enable-ebs-encryption-by-default --region {self.region}",
                    metadata={
                        "size_gb": size_gb,
                        "volume_type": volume.get("VolumeType"),
                        "state": volume.get("State"),
                        "availability_zone": volume.get("AvailabilityZone"),
                    },
                )
            )

        return red_flags

    def _bucket_names(self) -> list[str]:
        buckets = paginate(self.s3_client, "list_buckets", "Buckets")
        return [b["Name"] for b in buckets if b.get("Name")]

    def detect_unencrypted_s3_buckets(self) -> list[RedFlag]:
        """Flag buckets without a default encryption configuration."""
        red_flags: list[RedFlag] = []

        for bucket in self._bucket_names():
            try:
                self.s3_client.get_bucket_encryption(Bucket=bucket)
                continue
            except ClientError as e:
                if _error_code(e) != "ServerSideEncryptionConfigurationNotFoundError":
                    logger.warning(
                        "bucket_check_failed", bucket=bucket, check="encryption", error=str(e)
                    )
                    continue

            red_flags.append(
                self._flag(
                    severity=Severity.WARNING,
                    title=f"S3 bucket {bucket} is not encrypted",
                    description=(
                        f"S3 bucket {bucket} does not have default encryption enabled."
                    ),
                    resource_id=bucket,
                    resource_type="S3 Bucket",
                    auto_fixable=True,
                    fix_command=(
                        f"aws s3api put-bucket-encryption --bucket {bucket} "
                        "--server-side-encryption-configuration "
                        "'{\"Rules\":[{\"ApplyServerSideEncryptionByDefault\":"
                        "{\"SSEAlgorithm\":\"AES256\"}}]}'"
                    ),
                    metadata={"bucket_name": bucket},
                )
            )

        return red_flags

    def detect_public_s3_buckets(self) -> list[RedFlag]:
        """Flag buckets whose public access block is missing or incomplete."""
        red_flags: list[RedFlag] = []

        for bucket in self._bucket_names():
            try:
                response = self.s3_client.get_public_access_block(Bucket=bucket)
            except ClientError as e:
                if _error_code(e) == "NoSuchPublicAccessBlockConfiguration":
                    red_flags.append(self._public_bucket_flag(bucket, settings=None))
                else:
                    logger.warning(
                        "bucket_check_failed",
                        bucket=bucket,
                        check="public_access",
                        error=str(e),
                    )
                continue

            settings = response.get("PublicAccessBlockConfiguration", {})
            if not all(
                settings.get(key)
                for key in (
                    "BlockPublicAcls",
                    "IgnorePublicAcls",
                    "BlockPublicPolicy",
                    "RestrictPublicBuckets",
                )
            ):
                red_flags.append(self._public_bucket_flag(bucket, settings))

        return red_flags

    def _public_bucket_flag(self, bucket: str, settings: dict | None) -> RedFlag:
        if settings is None:
            title = f"S3 bucket {bucket} has no public access block"
            description = (
                f"S3 bucket {bucket} has no public access block configuration, so ACLs "
                f"or a bucket policy can expose it publicly."
            )
        else:
            title = f"S3 bucket {bucket} has public access"
            description = (
                f"S3 bucket {bucket} does not block all public access. This could expose "
                f"its objects to the internet."
            )

        return self._flag(
            severity=Severity.CRITICAL,
            title=title,
            description=description,
            resource_id=bucket,
            resource_type="S3 Bucket",
            auto_fixable=True,
            fix_command=(
                f"aws s3api put-public-access-block --bucket {bucket} "
                "--public-access-block-configuration "
                "BlockPublicAcls=true,IgnorePublicAcls=true,"
                "BlockPublicPolicy=true,RestrictPublicBuckets=true"
            ),
            metadata={"bucket_name": bucket, "public_access_block": settings},
        )
