import pytest

PRACTITIONER_PAYLOAD = {
    "specializations": ["psychologie clinique", "psychotraumatologie"],
    "professionalInfo": {
        "licenseNumber": "ADELI-750012345",
        "university": "Université Lumière Lyon 2",
        "graduationYear": 2012,
        "experience": 10,
        "languages": ["français"],
        "description": "Thérapies cognitives et comportementales",
    },
    "practice": {
        "address": {
            "street": "12 rue de la République",
            "city": "Lyon",
            "postalCode": "69002",
            "coordinates": {"latitude": 45.7640, "longitude": 4.8357},
        },
        "consultationTypes": ["presentiel", "teleconsultation"],
        "prices": {"consultation": 65, "teleconsultation": 55},
        "availability": {"tuesday": [{"start": "9:00", "end": "12:00"}]},
    },
}

@pytest.mark.asyncio
async def test_practitioner_creates_profile(client, auth_headers, practitioner_user):
    response = await client.post(
        "/api/practitioners/", json=PRACTITIONER_PAYLOAD, headers=await auth_headers(practitioner_user)
    )
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Practitioner profile created successfully"

    practitioner = body["practitioner"]
    assert practitioner["user"] == str(practitioner_user.id)
    assert practitioner["professionalInfo"]["licenseNumber"] == "ADELI-750012345"
    assert practitioner["practice"]["prices"]["consultation"] == 65.0
    assert practitioner["practice"]["availability"]["tuesday"] == [{"start": "09:00", "end": "12:00"}]
    assert practitioner["practice"]["consultationDuration"] == 45
    # Self-registered practitioners start unverified
    assert practitioner["verification"]["isVerified"] is False

@pytest.mark.asyncio
async def test_practitioner_cannot_self_verify(client, auth_headers, practitioner_user):
    payload = {**PRACTITIONER_PAYLOAD, "verification": {"isVerified": True}}
    response = await client.post("/api/practitioners/", json=payload, headers=await auth_headers(practitioner_user))
    assert response.status_code == 201
    assert response.json()["practitioner"]["verification"]["isVerified"] is False

@pytest.mark.asyncio
async def test_one_profile_per_practitioner(client, auth_headers, practitioner_user, practitioner):
    response = await client.post(
        "/api/practitioners/", json=PRACTITIONER_PAYLOAD, headers=await auth_headers(practitioner_user)
    )
    assert response.status_code == 409

@pytest.mark.asyncio
async def test_patient_cannot_create_profile(client, auth_headers, patient):
    response = await client.post(
        "/api/practitioners/", json=PRACTITIONER_PAYLOAD, headers=await auth_headers(patient)
    )
    assert response.status_code == 403

@pytest.mark.asyncio
async def test_invalid_availability_day(client, auth_headers, practitioner_user):
    payload = {
        **PRACTITIONER_PAYLOAD,
        "practice": {**PRACTITIONER_PAYLOAD["practice"], "availability": {"funday": []}},
    }
    response = await client.post("/api/practitioners/", json=payload, headers=await auth_headers(practitioner_user))
    assert response.status_code == 422

@pytest.mark.asyncio
async def test_list_filters(client, create_user, create_practitioner, practitioner):
    other = await create_user("dr.moreau@example.com", role="psychiatre")
    await create_practitioner(
        other,
        specializations=["psychiatrie générale"],
        city="Lyon",
        consultation_types=["teleconsultation"],
        average_rating=4.8,
    )
    hidden = await create_user("dr.petit@example.com", role="psychologue")
    await create_practitioner(hidden, is_verified=False)

    response = await client.get("/api/practitioners/")
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert body["totalPages"] == 1
    assert body["currentPage"] == 1
    # Best rated first
    assert body["practitioners"][0]["user"] == str(other.id)

    response = await client.get("/api/practitioners/", params={"specialization": "psychiatrie générale"})
    assert [p["user"] for p in response.json()["practitioners"]] == [str(other.id)]

    response = await client.get("/api/practitioners/", params={"city": "par"})
    assert [p["_id"] for p in response.json()["practitioners"]] == [str(practitioner.id)]

    response = await client.get("/api/practitioners/", params={"consultationType": "presentiel"})
    assert [p["_id"] for p in response.json()["practitioners"]] == [str(practitioner.id)]

@pytest.mark.asyncio
async def test_list_pagination(client, create_user, create_practitioner):
    for i in range(3):
        user = await create_user(f"dr{i}@example.com", role="psychologue")
        await create_practitioner(user)

    response = await client.get("/api/practitioners/", params={"page": 2, "limit": 2})
    body = response.json()
    assert body["total"] == 3
    assert body["totalPages"] == 2
    assert body["currentPage"] == 2
    assert len(body["practitioners"]) == 1

@pytest.mark.asyncio
async def test_search_nearby(client, create_user, create_practitioner, practitioner):
    far = await create_user("dr.lyon@example.com", role="psychologue")
    await create_practitioner(far, latitude=45.7640, longitude=4.8357)
    near = await create_user("dr.boulogne@example.com", role="psychologue")
    near_practitioner = await create_practitioner(near, latitude=48.8397, longitude=2.2399)

    response = await client.get("/api/practitioners/search/nearby", params={"latitude": 48.8566, "longitude": 2.3522})
    assert response.status_code == 200
    results = response.json()
    # Nearest first, Lyon is out of range
    assert [p["_id"] for p in results] == [str(practitioner.id), str(near_practitioner.id)]
    assert results[0]["distance"] == 0
    assert 8000 < results[1]["distance"] < 10000

@pytest.mark.asyncio
async def test_search_nearby_requires_coordinates(client):
    response = await client.get("/api/practitioners/search/nearby", params={"latitude": 48.8566})
    assert response.status_code == 400

@pytest.mark.asyncio
async def test_search_nearby_max_distance(client, create_user, create_practitioner, practitioner):
    near = await create_user("dr.boulogne@example.com", role="psychologue")
    await create_practitioner(near, latitude=48.8397, longitude=2.2399)

    response = await client.get(
        "/api/practitioners/search/nearby",
        params={"latitude": 48.8566, "longitude": 2.3522, "maxDistance": 5000},
    )
    assert response.status_code == 200
    assert [p["_id"] for p in response.json()] == [str(practitioner.id)]

@pytest.mark.asyncio
async def test_read_practitioner(client, practitioner):
    response = await client.get(f"/api/practitioners/{practitioner.id}")
    assert response.status_code == 200
    assert response.json()["specializations"] == ["psychologie clinique"]

    response = await client.get("/api/practitioners/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404

@pytest.mark.asyncio
async def test_update_practitioner(client, auth_headers, practitioner_user, practitioner, create_user):
    url = f"/api/practitioners/{practitioner.id}"
    payload = {"specializations": ["neuropsychologie"], "statistics": {"averageRating": 5}}

    response = await client.put(url, json=payload, headers=await auth_headers(practitioner_user))
    assert response.status_code == 200
    updated = response.json()["practitioner"]
    assert updated["specializations"] == ["neuropsychologie"]
    # Statistics are not self-reported
    assert updated["statistics"]["averageRating"] == 0

    stranger = await create_user("dr.autre@example.com", role="psychologue")
    response = await client.put(url, json=payload, headers=await auth_headers(stranger))
    assert response.status_code == 403

@pytest.mark.asyncio
async def test_admin_verifies_practitioner(client, auth_headers, admin, practitioner_user, create_practitioner):
    practitioner = await create_practitioner(practitioner_user, is_verified=False)

    response = await client.put(
        f"/api/practitioners/{practitioner.id}",
        json={"verification": {"isVerified": True}},
        headers=await auth_headers(admin),
    )
    assert response.status_code == 200
    verification = response.json()["practitioner"]["verification"]
    assert verification["isVerified"] is True
    assert verification["verifiedAt"] is not None
