"""factorio_shared.compute — Read-only lookups against the running server.

The server is a single instance in an auto-scaling group running one ECS
service. Reachability is "ASG instance InService" plus "ECS deployment has a
running task"; the address is the instance's public IPv4.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from factorio_shared.aws_clients import _get_asg, _get_ec2, _get_ecs
from factorio_shared.config import ASG_NAME, ECS_CLUSTER, ECS_SERVICE
from factorio_shared.errors import InfraError

logger = logging.getLogger(__name__)

IN_SERVICE = "InService"


class ServerInfo:
    def __init__(
        self,
        asg_client: Any = None,
        ec2_client: Any = None,
        ecs_client: Any = None,
        *,
        asg_name: str = ASG_NAME,
        cluster: str = ECS_CLUSTER,
        service: str = ECS_SERVICE,
    ) -> None:
        self._asg = asg_client
        self._ec2 = ec2_client
        self._ecs = ecs_client
        self.asg_name = asg_name
        self.cluster = cluster
        self.service = service

    @property
    def asg(self):
        if self._asg is None:
            self._asg = _get_asg()
        return self._asg

    @property
    def ec2(self):
        if self._ec2 is None:
            self._ec2 = _get_ec2()
        return self._ec2

    @property
    def ecs(self):
        if self._ecs is None:
            self._ecs = _get_ecs()
        return self._ecs

    # -----------------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------------

    def get_asg_instance(self) -> Optional[Dict[str, Any]]:
        try:
            resp = self.asg.describe_auto_scaling_groups(AutoScalingGroupNames=[self.asg_name])
        except (BotoCoreError, ClientError) as exc:
            raise InfraError(f"Failed describing auto scaling group {self.asg_name}: {exc}") from exc
        groups = resp.get("AutoScalingGroups") or []
        if not groups:
            return None
        instances = groups[0].get("Instances") or []
        return instances[0] if instances else None

    def get_instance_ip(self, instance_id: str) -> str:
        """Return the public IPv4 address of an EC2 instance."""
        try:
            resp = self.ec2.describe_instances(InstanceIds=[instance_id])
        except (BotoCoreError, ClientError) as exc:
            raise InfraError(f"Failed describing instance {instance_id}: {exc}") from exc
        for reservation in resp.get("Reservations") or []:
            for instance in reservation.get("Instances") or []:
                ip = instance.get("PublicIpAddress")
                if ip:
                    return ip
        raise InfraError(f"No public IP address found for instance {instance_id}")

    def is_service_running(self) -> bool:
        """True when the service's primary deployment has at least one running task."""
        try:
            resp = self.ecs.describe_services(cluster=self.cluster, services=[self.service])
        except (BotoCoreError, ClientError) as exc:
            raise InfraError(f"Failed describing service {self.service}: {exc}") from exc
        services = resp.get("services") or []
        deployments = (services[0].get("deployments") or []) if services else []
        if not deployments:
            raise InfraError(f"No deployment found for service {self.service}")
        return int(deployments[0].get("runningCount") or 0) > 0

    def get_running_server_ip(self) -> Optional[str]:
        instance = self.get_asg_instance()
        if not instance or instance.get("LifecycleState") != IN_SERVICE:
            return None
        return self.get_instance_ip(instance["InstanceId"])

    # -----------------------------------------------------------------------
    # Status reply
    # -----------------------------------------------------------------------

    def status_content(self) -> str:
        instance = self.get_asg_instance()
        if not instance:
            return "No server is running."

        state = instance.get("LifecycleState") or "Unknown"
        if state != IN_SERVICE:
            return f"Server instance is in the {state} state"

        logger.info("ASG instance is InService")
        # Address and service lookups hit unrelated resources; run both and wait.
        with ThreadPoolExecutor(max_workers=2) as pool:
            ip_future = pool.submit(self.get_instance_ip, instance["InstanceId"])
            running_future = pool.submit(self.is_service_running)
            ip = ip_future.result()
            running = running_future.result()

        if running:
            return f"Server is up and running at IP: `{ip}`!"
        return f"Server IP will be: `{ip}`. However, factorio has not started running yet."
