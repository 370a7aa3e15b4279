from app.interview.models import InterviewConfig, Question


_QUESTION_BANK = {
    "technical": [
        ("Explain how you would design a cache for a read-heavy service.", "medium", ("cache", "eviction", "latency")),
        ("How does a hash map handle collisions?", "easy", ("hash", "collision", "bucket")),
        ("Describe how you would debug a memory leak in production.", "hard", ("profiling", "heap", "monitoring")),
        ("What are the trade-offs between SQL and NoSQL databases?", "medium", ("schema", "consistency", "scaling")),
        ("Explain the difference between a process and a thread.", "easy", ("memory", "concurrency", "context")),
        ("How would you make an API idempotent?", "medium", ("idempotency", "retry", "key")),
    ],
    "behavioral": [
        ("Tell me about a time you disagreed with a teammate.", "medium", ("conflict", "outcome", "communication")),
        ("Describe a project that failed and what you learned.", "medium", ("failure", "lesson", "ownership")),
        ("How do you prioritize when everything is urgent?", "easy", ("priority", "impact", "stakeholders")),
        ("Tell me about a time you led without authority.", "hard", ("influence", "alignment", "result")),
        ("Describe how you handled a production incident.", "medium", ("incident", "communication", "postmortem")),
    ],
    "system-design": [
        ("Design a URL shortener.", "medium", ("hashing", "database", "redirect")),
        ("Design a rate limiter for a public API.", "medium", ("token", "bucket", "window")),
        ("Design a real-time chat system.", "hard", ("websocket", "fanout", "presence")),
        ("Design a news feed.", "hard", ("ranking", "fanout", "cache")),
    ],
    "general": [
        ("Explain your background and experience.", "easy", ("experience", "role", "impact")),
        ("What are your strongest technical skills?", "easy", ("skills", "examples", "depth")),
        ("Describe a challenging project you worked on.", "medium", ("challenge", "approach", "result")),
        ("Where do you want to grow in the next two years?", "easy", ("growth", "goals", "learning")),
    ],
}

_DIFFICULTY_ORDER = {"beginner": ("easy", "medium"), "intermediate": ("medium", "easy", "hard"), "advanced": ("hard", "medium")}


def generate_questions(config: InterviewConfig) -> list[Question]:
    """
    Static question selection by interview type and difficulty.
    `mixed` draws round-robin from every category.
    """
    interview_type = str(config.interview_type or "general").strip().lower()
    count = max(1, int(config.question_count or 5))

    if interview_type == "mixed":
        pools = [(category, list(items)) for category, items in _QUESTION_BANK.items()]
        picked = []
        while len(picked) < count and any(items for _, items in pools):
            for category, items in pools:
                if items and len(picked) < count:
                    picked.append((category, items.pop(0)))
    else:
        category = interview_type if interview_type in _QUESTION_BANK else "general"
        preferred = _DIFFICULTY_ORDER.get(str(config.difficulty or "").lower(), ("medium", "easy", "hard"))
        ranked = sorted(
            _QUESTION_BANK[category],
            key=lambda item: preferred.index(item[1]) if item[1] in preferred else len(preferred),
        )
        picked = [(category, item) for item in ranked[:count]]

    return [
        Question(
            question_id=f"q{index + 1}",
            prompt=prompt,
            category=category,
            difficulty=difficulty,
            expected_keywords=keywords,
        )
        for index, (category, (prompt, difficulty, keywords)) in enumerate(picked)
    ]
