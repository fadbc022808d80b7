"""
sim — Simulation core
=====================

Modules
-------
world
    :class:`World` entity manager, clock and per-tick loop.
agents
    Lanes, stops, cars, buses and the per-tick :class:`AgentView` snapshot.
car_model
    :class:`CarController` IDM following and lane-change decisions.
bus_model
    :class:`BusController` stop / dwell / lane-discipline state machine.
sensing
    Snapshot-based look-ahead and lane-change safety predicates.
traffic_policy
    :class:`TrafficPolicy` tunable constants, behaviour profiles and scoring.
geometry
    Catmull-Rom lane splines.
network
    Road layouts for the dedicated-lane and mixed-traffic scenarios.
scenario
    Density / schedule tiers resolved into a :class:`ScenarioConfig`.
scheduler
    Simulation-clock :class:`EventQueue`.
throughput
    :class:`ThroughputAggregator` passenger and travel-time reducer.
sim_bridge
    :class:`SimBridge` background-thread orchestrator.
physics
    Low-level conversion and distance helpers.
pose
    Render pose derivation.
"""
