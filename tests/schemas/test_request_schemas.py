"""
Tests for request schemas and their OpenAPI examples.
"""
from chatsync.schemas.conversation import ConversationCreate
from chatsync.schemas.message import MenuPlacementRequest


class TestRequestSchemas:
    """Test request schema configuration."""

    def test_menu_placement_example(self):
        """Test that the menu placement example is published in the JSON schema."""
        schema = MenuPlacementRequest.model_json_schema()
        assert schema["example"]["space_above"] == 120
        assert schema["example"]["is_own_message"] is True

    def test_conversation_create_example(self):
        """Test that the conversation create example is published in the JSON schema."""
        assert ConversationCreate.model_json_schema()["example"] == {"partner_id": "user_456"}

    def test_examples_use_model_config(self):
        """Test that examples live in model_config, not a nested Config class."""
        for model in (MenuPlacementRequest, ConversationCreate):
            assert "Config" not in vars(model)
            assert "example" in model.model_config["json_schema_extra"]
