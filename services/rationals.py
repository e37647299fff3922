from typing import List

from models import Plan, Scenario
from services.feasibility import NO_FLOOD_DEPTH_FT, required_retention


def generate_rationales(plan: Plan, scenario: Scenario) -> List[str]:
    """
    - One line per zone explaining its allocation against flood depth
    - One line per transfer between zones
    """
    zones_by_id = {z.zone_id: z for z in scenario.zones}
    rationales = []

    for a in plan.allocations:
        zone = zones_by_id[a.zone_id]
        depth = zone.flood_depth_ft
        if depth < NO_FLOOD_DEPTH_FT:
            reason = f"no flooding recorded ({depth:.2f} ft)"
        else:
            share = required_retention(depth)
            reason = f"flood depth {depth:.2f} ft requires keeping at least {share:.0%} of current staff"
        rationales.append(f"Zone {a.zone_name} receives {a.total} personnel: {reason}")

    for flow in plan.flows:
        if flow.from_zone_id == flow.to_zone_id:
            continue
        rationales.append(
            f"Move {flow.units} {flow.class_name} from {flow.from_zone_name} to {flow.to_zone_name} "
            f"to cover its allocation"
        )
    return rationales
