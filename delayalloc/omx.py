"""Read and write node-indexed matrices in OpenMatrix (OMX) files."""
from pathlib import Path
from typing import Collection, Tuple, Union

import numpy as np
import openmatrix as _omx

NumpyArray = np.array


def omx_to_node_matrix(
    omx_filename: Union[str, Path],
    matrix_name: str,
    mapping_name: str = "node_id",
) -> Tuple[NumpyArray, NumpyArray]:
    """Reads one matrix and its node ID mapping from an OMX file.

    Args:
        omx_filename (Union[str,Path]): Filename of OMX file.
        matrix_name (str): name of the matrix to read.
        mapping_name (str, optional): name of the mapping of node ID to matrix
            index. Defaults to "node_id".

    Returns:
        Tuple of the node IDs, ordered by matrix index, and the matrix array.
    """
    omx_file = _omx.open_file(str(omx_filename), "r")
    try:
        _avail_matrices = omx_file.list_matrices()
        if matrix_name not in _avail_matrices:
            raise ValueError(
                f"matrix {matrix_name} not found in omx file {omx_filename},\
                available matrices: {_avail_matrices}"
            )
        if mapping_name not in omx_file.list_mappings():
            raise ValueError(
                f"mapping {mapping_name} not found in omx file {omx_filename}"
            )
        node_map = omx_file.mapping(mapping_name)
        node_ids = np.array(sorted(node_map, key=node_map.get))
        matrix = np.array(omx_file[matrix_name].read(), dtype=float)
    finally:
        omx_file.close()
    return node_ids, matrix


def node_matrix_to_omx(
    node_ids: Collection,
    matrix: NumpyArray,
    omx_filename: Union[str, Path],
    matrix_name: str,
    mapping_name: str = "node_id",
):
    """Export a node-indexed square matrix to an OMX matrix file.

    Args:
        node_ids (Collection): node IDs, in matrix index order.
        matrix (NumpyArray): square matrix with one row / column per node ID.
        omx_filename (str): OMX file to write to.
        matrix_name (str): name of the matrix in the OMX file.
        mapping_name (str, optional): name of the mapping of node ID to matrix
            index. Defaults to "node_id".
    """
    matrix = np.asarray(matrix, dtype=float)
    if matrix.shape != (len(node_ids), len(node_ids)):
        raise ValueError(
            f"matrix shape {matrix.shape} does not match {len(node_ids)} node ids"
        )
    _omx_file = _omx.open_file(str(omx_filename), "w")
    try:
        _omx_file.create_mapping(mapping_name, list(node_ids))
        _omx_file.create_matrix(matrix_name, obj=matrix)
    finally:
        _omx_file.close()
