"""
Tab-separated log of sparsity / accuracy trade-offs.
"""

import os
from typing import IO, Union

import numpy as np


RESULTS_HEADER = ('sparsity', 'acc_test', 'acc_train')


class ResultsWriter:
    """
    Writes one ``sparsity\\tacc_test\\tacc_train`` row per pruning step.

    Accepts a path (opened and closed by the writer) or an open text file.
    """

    def __init__(self, target: Union[str, os.PathLike, IO[str]]):
        self._owns_file = not hasattr(target, 'write')
        self._file = open(target, 'w') if self._owns_file else target
        self._file.write('\t'.join(RESULTS_HEADER) + '\n')
        self._file.flush()

    def write_row(self, sparsity: float, acc_test: float, acc_train: float) -> None:
        np.savetxt(self._file, np.array([[sparsity, acc_test, acc_train]]),
                   delimiter='\t', fmt='%.6g')
        self._file.flush()

    def close(self) -> None:
        if self._owns_file:
            self._file.close()

    def __enter__(self) -> 'ResultsWriter':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
