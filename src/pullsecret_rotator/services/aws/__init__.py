"""AWS federated identity exchange."""
