from .docker import ContainerExecutionStrategy
from .local import LocalExecutionStrategy

__all__ = ["ContainerExecutionStrategy", "LocalExecutionStrategy"]
