"""Tests for the order history and reorder endpoints."""

import uuid
from collections.abc import Callable
from typing import Any

import pytest
from httpx import AsyncClient

from healios.models.customer import Customer


class TestOrders:
    @pytest.mark.asyncio
    async def test_list_and_get(
        self,
        client: AsyncClient,
        customer: Customer,
        order_factory: Callable[..., Any],
    ) -> None:
        order = await order_factory(customer_id=customer.id)
        await order_factory()

        response = await client.get("/api/v1/orders")
        assert response.status_code == 200
        assert [o["id"] for o in response.json()] == [str(order.id)]

        response = await client.get(f"/api/v1/orders/{order.id}")
        assert response.status_code == 200
        assert response.json()["total_amount"] == "827.00"

    @pytest.mark.asyncio
    async def test_unknown_order(self, client: AsyncClient) -> None:
        response = await client.get(f"/api/v1/orders/{uuid.uuid4()}")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_requires_auth(self, guest_client: AsyncClient) -> None:
        response = await guest_client.get("/api/v1/orders")

        assert response.status_code == 401


class TestReorder:
    @pytest.mark.asyncio
    async def test_reorder_fills_cart(
        self,
        client: AsyncClient,
        customer: Customer,
        order_factory: Callable[..., Any],
    ) -> None:
        order = await order_factory(customer_id=customer.id)

        response = await client.post(f"/api/v1/orders/{order.id}/reorder")

        assert response.status_code == 201
        data = response.json()
        assert data["reorder_id"]
        assert data["cart"]["customer_id"] == str(customer.id)
        assert data["cart"]["total"] == "827.00"

    @pytest.mark.asyncio
    async def test_reorder_other_customers_order(
        self,
        client: AsyncClient,
        customer_factory: Callable[..., Any],
        order_factory: Callable[..., Any],
    ) -> None:
        other = await customer_factory()
        order = await order_factory(customer_id=other.id)

        response = await client.post(f"/api/v1/orders/{order.id}/reorder")

        assert response.status_code == 404
