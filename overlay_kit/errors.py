from __future__ import annotations


class ModelContractError(ValueError):
    """
    The detector does not honour its declared tensor contract.

    Raised while building the post-processing graph (wrong raw layout, class
    count that disagrees with the label table) and when a frame produces
    outputs that do not match the built layout. Never recoverable per frame.
    """


class LabelTableError(ValueError):
    pass


class LabelIndexError(IndexError):
    def __init__(self, index: int, size: int):
        super().__init__(f"Label id {index} is outside the label table (size={size}).")
        self.index = index
        self.size = size
