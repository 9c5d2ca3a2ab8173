import json


class DexInfoError(Exception):
    pass


class SubgraphError(DexInfoError):
    def __init__(self, query_name, message, variables=None):
        super().__init__(message)
        self.query_name = query_name
        self.message = message
        self.variables = variables

    def __str__(self):
        return json.dumps({
            "query": self.query_name,
            "message": self.message,
            "variables": self.variables,
        }, default=str)


class SubgraphShapeError(SubgraphError):
    """Response parsed fine but did not carry the expected collection."""


class MulticallIntegrityError(DexInfoError):
    def __init__(self, expected: int, received: int):
        super().__init__(f"inconsistent multicall result length: sent {expected} calls, got {received} results")
        self.expected = expected
        self.received = received


class UnexpectedMutationError(DexInfoError):
    def __init__(self, mutation):
        super().__init__(f"Unexpected mutation type in cache store: {type(mutation).__name__!r}")
        self.mutation = mutation
