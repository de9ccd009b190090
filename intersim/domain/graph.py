import networkx as nx
from typing import Dict, Any, List, Sequence

class IntersectionGraph:
    """Directed topology of road segments (nodes) and connections (edges)."""

    def __init__(self):
        self.graph = nx.DiGraph()

    def add_road(self, road_id: int, name: str, length: float, lanes: int = 1):
        self.graph.add_node(road_id, name=name, length=length, lanes=lanes)

    def add_connection(self, source: int, target: int, u_source: float, u_target: float, turn: Any = None):
        self.graph.add_edge(source, target, u_source=u_source, u_target=u_target, turn=turn)

    def get_edge_data(self, source: int, target: int) -> Dict[str, Any]:
        return self.graph.get_edge_data(source, target)

    def has_road(self, road_id: int) -> bool:
        return self.graph.has_node(road_id)

    def successors(self, road_id: int) -> List[int]:
        return sorted(self.graph.successors(road_id))

    def is_valid_route(self, route: Sequence[int]) -> bool:
        if not route:
            return False
        if len(route) == 1:
            return self.graph.has_node(route[0])
        return nx.is_path(self.graph, list(route))

    def road_name(self, road_id: int) -> str:
        return self.graph.nodes[road_id].get('name', str(road_id))
