from __future__ import annotations

from typing import List

from grid_command_center.grid.feeders import Feeder
from grid_command_center.schemas.beckn import DERLocation, DERResource


# Static feeder set (loads and capacities in kW)
_FEEDERS: List[dict] = [
    {
        "feeder_id": "F-1234",
        "name": "Feeder F-1234",
        "substation_name": "Westminster Substation",
        "base_load": 70.0,
        "capacity": 95.0,
        "criticality": "medium",
        "connected_ders": 12,
    },
    {
        "feeder_id": "F-5678",
        "name": "Feeder F-5678",
        "substation_name": "Camden Substation",
        "base_load": 60.0,
        "capacity": 90.0,
        "criticality": "medium",
        "connected_ders": 8,
    },
    {
        "feeder_id": "F-9012",
        "name": "Feeder F-9012",
        "substation_name": "Hackney Substation",
        "base_load": 42.1,
        "capacity": 85.0,
        "criticality": "medium",
        "connected_ders": 15,
    },
    {
        "feeder_id": "F-3456",
        "name": "Feeder F-3456",
        "substation_name": "Islington Substation",
        "base_load": 35.8,
        "capacity": 80.0,
        "criticality": "low",
        "connected_ders": 6,
    },
    {
        "feeder_id": "F-7890",
        "name": "Feeder F-7890",
        "substation_name": "Tower Hamlets Substation",
        "base_load": 55.2,
        "capacity": 75.0,
        "criticality": "medium",
        "connected_ders": 10,
    },
    {
        "feeder_id": "F-2468",
        "name": "Feeder F-2468",
        "substation_name": "Lambeth Substation",
        "base_load": 62.0,
        "capacity": 85.0,
        "criticality": "medium",
        "connected_ders": 14,
    },
]


# DEG provider catalogue served by the mock gateway
DER_CATALOG: List[DERResource] = [
    DERResource(
        id="DER-BATT-001",
        name="Tesla Powerwall #42",
        type="battery",
        capacity=13.5,
        currentOutput=8.2,
        location=DERLocation(gps="51.5074,-0.1278", address="Westminster, London"),
        price_per_unit=45,
        availability="available",
    ),
    DERResource(
        id="DER-EV-002",
        name="Rapid EV Charger Station B",
        type="ev",
        capacity=150,
        currentOutput=0,
        location=DERLocation(gps="51.5195,-0.1383", address="Camden, London"),
        price_per_unit=50,
        availability="available",
    ),
    DERResource(
        id="DER-SOLAR-003",
        name="Commercial Solar Array",
        type="solar",
        capacity=25,
        currentOutput=18.5,
        location=DERLocation(gps="51.5211,-0.0759", address="Hackney, London"),
        price_per_unit=35,
        availability="available",
    ),
    DERResource(
        id="DER-DR-004",
        name="Smart HVAC Load Controller",
        type="demand_response",
        capacity=50,
        currentOutput=0,
        location=DERLocation(gps="51.5112,-0.1289", address="Islington, London"),
        price_per_unit=40,
        availability="available",
    ),
    DERResource(
        id="DER-BATT-005",
        name="Community Battery Bank",
        type="battery",
        capacity=200,
        currentOutput=120,
        location=DERLocation(gps="51.5045,-0.0865", address="Tower Hamlets, London"),
        price_per_unit=42,
        availability="available",
    ),
    DERResource(
        id="DER-DR-006",
        name="Industrial Load Shift System",
        type="demand_response",
        capacity=300,
        currentOutput=0,
        location=DERLocation(gps="51.5010,-0.1142", address="Lambeth, London"),
        price_per_unit=38,
        availability="available",
    ),
]

# Which DER types can serve each fulfillment type
FULFILLMENT_DER_TYPES: dict[str, set[str]] = {
    "energy-dispatch": {"battery", "ev", "solar", "demand_response"},
    "energy-storage": {"battery", "ev"},
    "energy-demand-reduction": {"demand_response"},
}


def seed_feeders() -> List[Feeder]:
    """Fresh feeder objects for a new simulation."""
    return [Feeder(**entry) for entry in _FEEDERS]


def list_ders() -> List[DERResource]:
    return [der.model_copy() for der in DER_CATALOG]
