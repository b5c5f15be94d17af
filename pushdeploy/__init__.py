"""pushdeploy - build a GitHub repository and publish its static output to S3."""

__version__ = "0.1.0"
