from studytree.clients.completion import CompletionClient, check_configuration

__all__ = ["CompletionClient", "check_configuration"]
