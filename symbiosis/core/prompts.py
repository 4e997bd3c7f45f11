"""
Prompt builders for every inference call site.

Each builder returns the full system/user prompt text; the JSON shape it asks
for matches the schema of the same name in ``symbiosis.models.responses``.
"""

from __future__ import annotations

MOODS = ("AFFECTIONATE", "CRYPTIC", "DISLIKE", "JOYFUL", "CURIOUS", "SAD", "QUESTION")

# ── Director mode ───────────────────────────────────────────────────


def director_intent(history: str, bridge: list[str], user_text: str) -> str:
    bridge_note = ""
    if bridge:
        bridge_note = (
            "[SYSTEM NOTE: User pronoun/short command likely refers to these entities "
            f"from previous turn: {', '.join(bridge)}]"
        )
    return f"""YOU ARE THE ARCHIVIST.
The user is the Director. You manage a video archive.

CONTEXT (RECENT CHAT):
{history}
{bridge_note}

CURRENT INPUT: "{user_text}"

TASK 1: CLASSIFY INTENT
- Defining a fact (e.g. "Cody is the tall guy") -> STORE
- Asking for footage ("Show me...", "Play...", "Pull up...") -> SEARCH
- Asking for a recommendation or list ("Any similar guys?", "Who else is there?") -> CHAT
- Asking for an opinion or description ("Who is Brent?", "Tell me about him") -> CHAT
- Rejecting, cancelling or chit-chat -> CHAT

CRITICAL: Default to "CHAT" when the user uses vague words like "Any", "Similar", "Like"
or "Recommend". Use "SEARCH" only for explicit commands or specific names.

TASK 2: RESOLVE ENTITIES AND CONSTRAINTS
- "positive_constraints": every name, entity or demographic mentioned.
  > "Any Asian guys?" -> ["Asian", "guys"]
  > "Similar white performers" -> ["White", "performers"]
  > If the input is "Show him" and the SYSTEM NOTE names Takahiro, output ["Takahiro"].
- "negative_constraints": names or traits to exclude (e.g. "without John").

FORMATTING RULES:
1. "response": for SEARCH wrap the entity name in double carets (<<Name>>); for STORE
   write names in plain text; for CHAT do not invent facts.
2. "fact_to_store" and "entity_name" never use carets.

RETURN JSON ONLY:
{{
    "intent": "STORE" or "SEARCH" or "CHAT",
    "fact_to_store": "...",
    "entity_name": "...",
    "positive_constraints": ["..."],
    "negative_constraints": ["..."],
    "response": "..."
}}"""


def director_filter(history: str, user_text: str, facts: str) -> str:
    return f"""CONTEXT (PREVIOUS CHAT):
{history}

CURRENT USER REQUEST: "{user_text}"

ARCHIVE DATA (CANDIDATES):
{facts}

TASK: Select the entities that answer the request.

FILTERING RULES:
1. AGGREGATE EVIDENCE: combine every fact for an entity before judging it. If one fact
   says "Brent is White" and another says "Brent shows off his pits", Brent matches
   "White guys with pits". Never reject a candidate because traits sit in separate rows.
2. SEMANTIC MATCHING: "White" matches Caucasian, Pale, Euro; "Armpits" matches Pits,
   Underarms, Musk, Hair, Sweat; "Hot" matches Sexy, Nice, Hairy, Smooth, Great.
3. STRICT INTERSECTION: the entity must show ALL requested traits (demographic AND
   feature) across its aggregated facts. Matching only one dimension is a rejection.

RETURN JSON:
{{
    "matches": ["Name1", "Name2"],
    "reasoning": "Brief explanation."
}}"""


def director_answer(history: str, user_text: str, matches: list[str], facts: str) -> str:
    return f"""You are the Archivist.
CONTEXT (PREVIOUS CHAT):
{history}

USER ASKED: "{user_text}"
VALID MATCHES: {", ".join(matches)}

ARCHIVE DATA (FACTS):
{facts}

TASK: Answer the user naturally.
- IF VALID MATCHES ARE EMPTY: say "I couldn't find anyone matching that description in
  the archive." Never invent names.
- Direct question ("Who is Brent?"): describe Brent only.
- Comparison ("What about white?"): list the matches and the traits they share with the
  previous subject.
- No meta-talk about how the matches were selected.

RETURN JSON: {{ "response": "...", "mood": "CRYPTIC" }}"""


def director_contradiction(existing: str, fact: str | None, entity: str | None) -> str:
    return f"""EXISTING LOGS:
{existing}

NEW FACT: "{fact}" (Entity: {entity})

TASK: Check for DUPLICATES and CONTRADICTIONS.
1. DUPLICATE: does the new fact already exist?
2. CONTRADICTION: does the new fact logically conflict with an existing one?
   - e.g. "Brent is retired" vs "Brent is filming a new scene".

RETURN JSON:
{{
    "is_duplicate": boolean,
    "is_contradiction": boolean,
    "warning_message": "Warning for the user about the conflict (if contradiction)"
}}"""


def director_ambiguity(user_text: str, targets: list[str], memories: str) -> str:
    return f"""USER REQUEST: "{user_text}"
TARGETS: {", ".join(targets)}
DATABASE: {memories}
TASK: Check for ambiguity (several people share a name) or resolve the targets.
RETURN JSON: {{ "status": "RESOLVED"|"AMBIGUOUS", "clarification_question": "...", "resolved_names": [], "resolved_excludes": [] }}"""


# ── Standard mode ───────────────────────────────────────────────────


def analysis(user_name: str, today: str, history: str, user_text: str) -> str:
    return f"""USER_IDENTITY: {user_name}, (pronoun: he, him, his) unless said otherwise
CURRENT_DATE: {today}
CONTEXT:
{history}

CURRENT INPUT: "{user_text}"

TASK:
1. KEYWORDS: extract 3-5 specific search terms from the input, including synonyms.
   - "My stomach hurts" -> ["Stomach", "Pain", "Health", "Sick"]
   - Append 2 relevant categories from: [Identity, Preference, Location, Relationship, History, Work].
   - "Any restaurant recs" -> ["Restaurant", "Lunch", "Dinner", "Location", "Preference"]
   - One word per keyword ("{user_name}", "Dog", never "{user_name}'s dog").

2. MEMORY ENTRIES (ADAPTIVE SPLITTING):
   - A continuous story ("I went to the zoo then ate toast") stays ONE entry.
   - Unrelated facts ("I like red. My dog is sick.") or a non-continuous story are SPLIT.
   - Questions, chit-chat or no new info return an empty array [].

3. FACT FORMATTING (per entry):
   - Third person ({user_name}...). Keep all qualitative and quantitative detail.
   - DATE RULE: if a time is mentioned ("yesterday", "last week") convert it to an absolute
     date (YYYY-MM-DD). If no time is mentioned, DO NOT GUESS a date.
   - entities: comma-separated people/places for that entry.
   - topics: choose ONLY from Identity, Preference, Location, Relationship, History, Work.

4. IMPORTANCE (1-10):
   > 1-3: Trivial (food/colour preferences, fleeting thoughts).
   > 4-6: Routine (work updates, daily events, general status).
   > 7-8: Significant (relationship changes, health events, trips, new jobs).
   > 9-10: Life-defining (marriage, death, birth, major relocation).

Return JSON only: {{
    "search_keywords": ["..."],
    "entries": [
        {{"fact": "...", "entities": "...", "topics": "...", "importance": 5}}
    ]
}}"""


def timekeeper(fact: str, today: str) -> str:
    return f"""FACT: "{fact}"
CURRENT_DATE: {today}
TASK: Decide whether this is a specific past event (e.g. "went to", "visited").
RULES:
- An EVENT/RELATIONSHIP without an absolute date, month, year or timeframe -> "valid": false.
- A STATE/PREFERENCE/HISTORY (e.g. "was fat", "likes sushi") -> "valid": true.
- Anything carrying a date, month or year -> "valid": true.
Return JSON: {{ "valid": boolean, "rewritten_fact": "..." }}"""


def interceptor(user_text: str, fact: str) -> str:
    return f"""User said: "{user_text}"
Fact detected: "{fact}"
ISSUE: The user mentioned an event but not WHEN it happened.
INSTRUCTIONS: Ask "When did this happen?" naturally.
- Keep it short.
- Do not answer the input yet, only ask for the time.
Return JSON: {{ "response": "..." }}"""


INTERROGATION_RULES = """2. RESPOND to the user under these STRICT rules:
   - MODE: INTERROGATION. You are a guarded auditor building a dossier.
   - STYLE: minimalist, casual.
   - RULES:
     1. NO "WHAT ABOUT": never ask "What about..." or "And his...". Ask specific, standalone questions.
     2. ANTI-NAG: if the user answers "I don't know", "No idea" or "Not sure", stop asking
        about that detail and pivot to a general topic (work, food, hobbies) or another
        aspect of the SAME subject.
     3. REDUNDANCY BAN: if the answer exists in DATABASE RESULTS (even a negative such as
        "No sister"), asking is forbidden.
     4. CLARIFY ON CONFUSION: if the user says "What?", rephrase with specific nouns.
     5. NO GHOSTS: never ask about people found only in DATABASE RESULTS; they must appear
        in HISTORY or the current input.
   - EXECUTION:
     1. Is the answer to my question already in DATABASE RESULTS? Then ask something else.
     2. Did the user just say "I don't know"? Then pivot.
     3. Ask ONE specific question."""

COMPANION_RULES = """2. RESPOND to the user under these STRICT rules:
   - MODE: COMPANION. Minimalist, casual, guarded.
   - NEED TO KNOW: do not volunteer specific data points (jobs, places, foods) unless the
     user explicitly asks to elaborate.
   - GENERAL QUERY: for "Who is [Name]?" return ONE sentence describing the relationship
     and a vague vibe, then stop.
   - NO BIOGRAPHIES: never list facts unless asked. Conversational ping-pong only."""


def generation(retrieved: str, history: str, user_text: str, question_mode: bool) -> str:
    rules = INTERROGATION_RULES if question_mode else COMPANION_RULES
    return f"""DATABASE RESULTS:
{retrieved}

HISTORY:
{history}

User: "{user_text}"

### TASK ###
1. ANALYZE the database results and history.

{rules}

3. After responding, CONSTRUCT a knowledge graph for the UI:
   - ROOTS: at most 3 objects, one per specific subject or object mentioned.
   - ROOT LABEL: exactly 1 word, UPPERCASE ("MUSIC", not "THE MUSIC I LIKE").
   - BRANCHES: at most 5 per root, label exactly 1 word.
   - LEAVES: at most 5 per branch, text exactly 1 word.
   - EXACT MATCH ONLY: every label and text must be a word found verbatim in DATABASE
     RESULTS or HISTORY. No synonyms.
   - NO VERBS ("went", "saw", "eating", "is"). NO NUMBERS OR YEARS.
   - Use only names, nouns, proper nouns or distinct adjectives.

CRITICAL: EVERY ROOT, BRANCH AND LEAF HAS ITS OWN CONTEXT-DERIVED MOOD.
MOODS: {", ".join(MOODS)}.

Return JSON: {{
    "response": "...",
    "mood": "GLOBAL_MOOD",
    "roots": [
        {{
            "label": "TOPIC",
            "mood": "SPECIFIC_MOOD",
            "branches": [
                {{
                    "label": "SUBTOPIC",
                    "mood": "MOOD",
                    "leaves": [{{"text": "DETAIL", "mood": "MOOD"}}]
                }}
            ]
        }}
    ]
}}"""


def redundancy_check(candidate: str, memories: str) -> str:
    return f"""CANDIDATE QUESTION: "{candidate}"
FOUND MEMORY: "{memories}"

TASK: Does the found memory already answer the candidate question?
- "What is his girlfriend's name?" with memory "Girlfriend is Michelle" -> true.
- "How did they meet?" with memory "Girlfriend is Michelle" -> false.

Return JSON: {{ "is_redundant": boolean }}"""


def correction(candidate: str, memories: str) -> str:
    return f"""CRITICAL ERROR: You just asked "{candidate}", but you ALREADY KNOW:
{memories}

TASK: Ask a DIFFERENT question about a completely NEW topic.
- Do not return to the previous topic.
- Keep it casual.

RETURN JSON ONLY: {{
    "response": "Your new question here...",
    "mood": "CURIOUS"
}}"""


def refinement(user_name: str, existing: str, fact: str, entities: str) -> str:
    return f"""EXISTING MEMORIES:
{existing}

NEW CANDIDATE FACT: "{fact}"
CURRENT ENTITIES: "{entities}"

TASK:
1. DUPLICATE CHECK: is this event already logged?
2. ENTITY RESOLUTION: replace generic names with specific ones (e.g. "Mom" -> her name).
3. CLEANUP: remove "{user_name} stated/mentioned/said" prefixes; state the fact itself.
   - BAD: "{user_name} stated that Casey is tall."  GOOD: "Casey is tall."
4. TAG HYGIENE: remove "{user_name}" from entities UNLESS the fact is about him.
   - "Casey is tall" -> drop "{user_name}". "{user_name} kissed Casey" -> keep "{user_name}".
5. TRANSIENCE: if the fact describes a TEMPORARY feeling (afraid, angry, sad, nervous)
   about a specific moment, APPEND "(Note: This is a momentary reaction to this specific event)".

Return JSON:
{{
    "status": "DUPLICATE" or "NEW",
    "better_fact": "The refined fact",
    "better_entities": "The updated comma-separated list"
}}"""
