# ai_token_gate/demo/seed_demo_data.py

from ai_token_gate.core.interaction_log import InteractionLog
from ai_token_gate.core.ledger import TokenLedger
from ai_token_gate.storage.repository import initialize_schema

initialize_schema()

ledger = TokenLedger()
interaction_log = InteractionLog()

ledger.credit("applicant-demo", 10)
ledger.credit("recruiter-demo", 50)
ledger.credit("applicant-empty", 1)
ledger.deduct("applicant-empty", 1, "gemini_chat")

interaction_log.record(
    user_id="applicant-empty",
    flow_name="gemini_chat",
    status="success",
    input={"message": "Wie optimiere ich meinen Lebenslauf?"},
    output={"response": "Hier sind drei Tipps..."},
    metadata={"model": "gemini-pro", "tokens_charged": 1}
)

print("Demo balances and interactions inserted")
