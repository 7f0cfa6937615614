import networkx as nx
import numpy as np
from typing import Any, Dict

def is_rooted_tree(G: nx.Graph) -> bool:
    if G.is_multigraph():
        return False
    if not G.is_directed():
        return False
    return (nx.is_weakly_connected(G) and 
            G.number_of_nodes() == G.number_of_edges() + 1)

def tree_to_digraph(tree: Any) -> nx.DiGraph:
    # Edges point from parent to child, weighted by the segment length
    G: nx.DiGraph = nx.DiGraph()
    G.add_nodes_from(range(len(tree.segments)))
    for id, segment in enumerate(tree.segments):
        if segment.parent_id == -1:
            continue
        weight: float = float(np.linalg.norm(segment.tip - tree.segments[segment.parent_id].tip))
        G.add_edge(segment.parent_id, id, weight=weight)
    return G

class MaxDepth:
    _G: nx.DiGraph

    _node_to_max_depth: Dict[int, float]
    _edge_attribute: str
    _leaf_depth: float

    def __init__(self, G: nx.Graph, edge_attribute: str = "weight", leaf_depth: float = 0.) -> None:
        if not is_rooted_tree(G):
            raise ValueError("Not a rooted tree.")
        
        self._G = G

        self._node_to_max_depth = {
            node: 0. for node in G.nodes
        }
        self._edge_attribute = edge_attribute
        self._leaf_depth = leaf_depth
        return
    
    def _reset(self) -> None:
        self._node_to_max_depth = {key: 0. for key in self._node_to_max_depth}
        return
    
    def _compute_from_leaf(self, v: int) -> None:
        self._node_to_max_depth[v] = max(self._node_to_max_depth[v], self._leaf_depth)
        while True:
            predecessors = list(self._G.predecessors(v))
            if len(predecessors) == 0:
                break
            u: int = predecessors[0]
            max_depth = self._node_to_max_depth[v] + self._G[u][v][self._edge_attribute]
            if max_depth <= self._node_to_max_depth[u]:
                break
            self._node_to_max_depth[u] = max_depth
            v = u
        return
    
    def compute_all(self) -> Dict[int, float]:
        self._reset()
        for node, out_degree in self._G.out_degree():
            if out_degree != 0:
                continue
            self._compute_from_leaf(node)
        return self._node_to_max_depth
