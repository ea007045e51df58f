"""Tests for battle API endpoints."""

from httpx import AsyncClient

ALICE = {"X-User-Id": "alice"}
BOB = {"X-User-Id": "bob"}
CAROL = {"X-User-Id": "carol"}


async def challenge(client: AsyncClient, card_id: str, opponent_id: str | None = "bob") -> dict:
    response = await client.post(
        "/battles",
        json={"staked_card_id": card_id, "opponent_id": opponent_id},
        headers=ALICE,
    )
    assert response.status_code == 201
    return response.json()


class TestChallengeFlow:
    async def test_full_battle(self, client: AsyncClient, make_card) -> None:
        """Challenge, accept, select, resolve; the loser's card changes hands."""
        alice_card = await make_card("alice", {"str": 25, "dex": 20, "int": 15})
        bob_card = await make_card("bob", {"str": 10, "dex": 10, "int": 10}, "Void Sorcerer")
        battle_id = (await challenge(client, alice_card.id))["id"]

        accepted = await client.post(f"/battles/{battle_id}/accept", headers=BOB)
        assert accepted.json()["status"] == "active"

        first = await client.post(
            f"/battles/{battle_id}/select", json={"card_id": alice_card.id}, headers=ALICE
        )
        assert first.status_code == 200
        assert first.json()["both_submitted"] is False

        second = await client.post(
            f"/battles/{battle_id}/select", json={"card_id": bob_card.id}, headers=BOB
        )
        assert second.json()["both_submitted"] is True

        resolved = await client.post(f"/battles/{battle_id}/resolve", headers=BOB)
        assert resolved.status_code == 200
        data = resolved.json()
        assert data["battle"]["status"] == "completed"
        assert data["battle"]["winner_id"] == "alice"
        assert data["outcome"]["verdict"] == "challenger"
        assert data["outcome"]["challenger_points"] == 3
        assert data["transfer"]["card_id"] == bob_card.id
        assert data["already_resolved"] is False

        alice_cards = (await client.get("/cards", headers=ALICE)).json()
        assert alice_cards["total_cards"] == 2

        history = await client.get(f"/cards/{bob_card.id}/history", headers=BOB)
        assert history.json()["transfers"][0]["battle_id"] == battle_id

    async def test_resolve_twice_returns_stored(self, client: AsyncClient, make_card) -> None:
        """Resolving again reports the first result."""
        alice_card = await make_card("alice", {"str": 10, "dex": 10, "int": 10})
        bob_card = await make_card("bob", {"str": 25, "dex": 20, "int": 15})
        battle_id = (await challenge(client, alice_card.id))["id"]
        await client.post(f"/battles/{battle_id}/accept", headers=BOB)
        await client.post(
            f"/battles/{battle_id}/select", json={"card_id": alice_card.id}, headers=ALICE
        )
        await client.post(f"/battles/{battle_id}/select", json={"card_id": bob_card.id}, headers=BOB)
        first = (await client.post(f"/battles/{battle_id}/resolve", headers=ALICE)).json()

        second = (await client.post(f"/battles/{battle_id}/resolve", headers=ALICE)).json()

        assert second["already_resolved"] is True
        assert second["battle"]["winner_id"] == first["battle"]["winner_id"] == "bob"
        assert second["transfer"]["card_id"] == alice_card.id


class TestErrors:
    async def test_challenge_with_foreign_card(self, client: AsyncClient, make_card) -> None:
        """Staking a card you do not own is a 403."""
        bob_card = await make_card("bob")

        response = await client.post(
            "/battles", json={"staked_card_id": bob_card.id, "opponent_id": "bob"}, headers=ALICE
        )

        assert response.status_code == 403
        assert response.json()["failure"]["kind"] == "card_not_owned"

    async def test_double_select_is_conflict(self, client: AsyncClient, make_card) -> None:
        """A second selection by the same player is a 409."""
        card = await make_card("alice")
        battle_id = (await challenge(client, card.id))["id"]
        await client.post(f"/battles/{battle_id}/accept", headers=BOB)
        await client.post(f"/battles/{battle_id}/select", json={"card_id": card.id}, headers=ALICE)

        response = await client.post(
            f"/battles/{battle_id}/select", json={"card_id": card.id}, headers=ALICE
        )

        assert response.status_code == 409
        assert response.json()["failure"]["kind"] == "card_already_selected"

    async def test_select_before_accept_is_conflict(
        self, client: AsyncClient, make_card
    ) -> None:
        """Selecting in a pending battle is a 409."""
        card = await make_card("alice")
        battle_id = (await challenge(client, card.id))["id"]

        response = await client.post(
            f"/battles/{battle_id}/select", json={"card_id": card.id}, headers=ALICE
        )

        assert response.status_code == 409
        assert response.json()["failure"]["kind"] == "invalid_state"

    async def test_outsider_gets_403(self, client: AsyncClient, make_card) -> None:
        """Non-participants cannot view a battle."""
        card = await make_card("alice")
        battle_id = (await challenge(client, card.id))["id"]

        response = await client.get(f"/battles/{battle_id}", headers=CAROL)

        assert response.status_code == 403

    async def test_unknown_battle(self, client: AsyncClient) -> None:
        """Unknown battles are a 404."""
        response = await client.get("/battles/missing", headers=ALICE)

        assert response.status_code == 404


class TestLifecycle:
    async def test_decline(self, client: AsyncClient, make_card) -> None:
        """Declined challenges complete without a winner."""
        card = await make_card("alice")
        battle_id = (await challenge(client, card.id))["id"]

        response = await client.post(f"/battles/{battle_id}/decline", headers=BOB)

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["winner_id"] is None

    async def test_abandon(self, client: AsyncClient, make_card) -> None:
        """Abandoned battles complete without a winner."""
        card = await make_card("alice")
        battle_id = (await challenge(client, card.id))["id"]
        await client.post(f"/battles/{battle_id}/accept", headers=BOB)

        response = await client.post(f"/battles/{battle_id}/abandon", headers=BOB)

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["completion_reason"] == "abandoned"

    async def test_resolve_after_abandon_has_no_outcome(
        self, client: AsyncClient, make_card
    ) -> None:
        """A battle abandoned after the reveal resolves to its stored no-winner record."""
        alice_card = await make_card("alice", {"str": 40, "dex": 20, "int": 20})
        bob_card = await make_card("bob", {"str": 20, "dex": 20, "int": 20})
        battle_id = (await challenge(client, alice_card.id))["id"]
        await client.post(f"/battles/{battle_id}/accept", headers=BOB)
        await client.post(
            f"/battles/{battle_id}/select", json={"card_id": alice_card.id}, headers=ALICE
        )
        await client.post(f"/battles/{battle_id}/select", json={"card_id": bob_card.id}, headers=BOB)
        await client.post(f"/battles/{battle_id}/abandon", headers=BOB)

        response = await client.post(f"/battles/{battle_id}/resolve", headers=ALICE)

        assert response.status_code == 200
        data = response.json()
        assert data["already_resolved"] is True
        assert data["battle"]["winner_id"] is None
        assert data["outcome"] is None
        assert data["transfer"] is None

    async def test_open_challenge(self, client: AsyncClient, make_card) -> None:
        """An open challenge is taken by whoever accepts first."""
        card = await make_card("alice")
        battle_id = (await challenge(client, card.id, opponent_id=None))["id"]

        response = await client.post(f"/battles/{battle_id}/accept", headers=CAROL)

        assert response.json()["opponent_id"] == "carol"

    async def test_list_battles(self, client: AsyncClient, make_card) -> None:
        """Both participants see the battle in their list."""
        card = await make_card("alice")
        battle_id = (await challenge(client, card.id))["id"]

        for headers in (ALICE, BOB):
            data = (await client.get("/battles", headers=headers)).json()
            assert [b["id"] for b in data["battles"]] == [battle_id]

        carol = (await client.get("/battles", headers=CAROL)).json()
        assert carol["battles"] == []

    async def test_selection_view(self, client: AsyncClient, make_card) -> None:
        """The opponent sees that a card was submitted but not which."""
        card = await make_card("alice")
        battle_id = (await challenge(client, card.id))["id"]
        await client.post(f"/battles/{battle_id}/accept", headers=BOB)
        await client.post(f"/battles/{battle_id}/select", json={"card_id": card.id}, headers=ALICE)

        data = (await client.get(f"/battles/{battle_id}/selection", headers=BOB)).json()

        assert data["player1_submitted"] is True
        assert data["player1_card_id"] is None
