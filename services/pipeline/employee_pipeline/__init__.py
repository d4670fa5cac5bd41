"""Employee transfer pipeline: CSV -> RabbitMQ -> PostgreSQL."""

__version__ = "0.1.0"
