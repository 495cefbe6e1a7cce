"""
Amazon EKS scaling provider
"""

from .kubernetes import KubernetesScalingProvider


class AwsEksProvider(KubernetesScalingProvider):
    """Amazon Elastic Kubernetes Service"""

    provider_name = "aws"
    provider_label = "Amazon EKS"
