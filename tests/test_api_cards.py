"""Tests for card API endpoints."""

from httpx import AsyncClient



class TestListCards:
    async def test_empty(self, client: AsyncClient) -> None:
        """A new player has no cards."""
        response = await client.get("/cards", headers={"X-User-Id": "alice"})

        assert response.status_code == 200
        assert response.json() == {"owner_id": "alice", "cards": [], "total_cards": 0}

    async def test_lists_own_cards(self, client: AsyncClient, make_card) -> None:
        """Only the caller's cards are listed."""
        card = await make_card("alice", {"str": 36, "dex": 20, "int": 20})
        await make_card("bob")

        response = await client.get("/cards", headers={"X-User-Id": "alice"})

        data = response.json()
        assert data["total_cards"] == 1
        assert data["cards"][0]["id"] == card.id
        assert data["cards"][0]["attributes"] == {"str": 36, "dex": 20, "int": 20}

    async def test_requires_identity(self, client: AsyncClient) -> None:
        """Missing identity header is 401."""
        assert (await client.get("/cards")).status_code == 401


class TestCardHistory:
    async def test_history_of_new_card(self, client: AsyncClient, make_card) -> None:
        """A card that never changed hands has an empty trail."""
        card = await make_card("alice")

        response = await client.get(f"/cards/{card.id}/history", headers={"X-User-Id": "alice"})

        assert response.status_code == 200
        data = response.json()
        assert data["current_owner_id"] == "alice"
        assert data["transfers"] == []

    async def test_history_hidden_from_strangers(
        self, client: AsyncClient, make_card
    ) -> None:
        """Players who never owned the card get a 404."""
        card = await make_card("alice")

        response = await client.get(f"/cards/{card.id}/history", headers={"X-User-Id": "mallory"})

        assert response.status_code == 404

    async def test_missing_card(self, client: AsyncClient) -> None:
        """Unknown cards are a 404."""
        response = await client.get("/cards/nope/history", headers={"X-User-Id": "alice"})

        assert response.status_code == 404
        assert response.json()["failure"]["kind"] == "not_found"
