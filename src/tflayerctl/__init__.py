"""tflayerctl — layered Terraform deployment orchestration for Azure."""

__version__ = "0.4.0"
