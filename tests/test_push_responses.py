import uuid

from groupable.push.responses import SendGroupMessageResponse


class TestSendGroupMessageResponse:

    def test_parses_unsent_targets(self):
        first, second = uuid.uuid4(), uuid.uuid4()
        response = SendGroupMessageResponse.model_validate_json(
            f'{{"uuids404": ["{first}", "{second}"]}}'
        )
        assert response.get_unsent_targets() == {first, second}

    def test_skips_unparseable_entries(self):
        valid = uuid.uuid4()
        response = SendGroupMessageResponse(uuids404=[str(valid), "not-a-uuid", ""])
        assert response.get_unsent_targets() == {valid}

    def test_duplicates_collapse(self):
        valid = uuid.uuid4()
        response = SendGroupMessageResponse(uuids404=[str(valid), str(valid).upper()])
        assert response.get_unsent_targets() == {valid}

    def test_missing_list(self):
        assert SendGroupMessageResponse.model_validate({}).get_unsent_targets() == set()
