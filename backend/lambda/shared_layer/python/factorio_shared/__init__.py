"""factorio_shared — Shared modules for the Factorio server control Lambdas.

Provides:
    - Discord request signature verification (Ed25519)
    - CloudFormation desired-state transitions with outcome classification
    - Server status lookups (AutoScaling / EC2 / ECS)
    - Pending-interaction ledger backed by DynamoDB
    - Discord reply payloads and follow-up webhook delivery
"""

__version__ = "1.0.0"
