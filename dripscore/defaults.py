from .schemas import AnalysisResult, CategoryScore, StyleTipGroup, TipsResult

DEFAULT_FEEDBACK = (
    "Overall, you've put together a nice outfit. Try adding a statement "
    "accessory and consider tailoring for a more flattering fit."
)

_DEFAULT_BREAKDOWN = (
    ("Overall Style", 6, "👑",
     "Nice outfit with some good elements. A few tweaks could make it even better."),
    ("Color Coordination", 7, "🎨",
     "The colors work well together. Good eye for matching tones."),
    ("Fit & Proportion", 5, "📏",
     "The fit could be more flattering. Consider tailoring for a better silhouette."),
    ("Accessories", 5, "💍",
     "Your accessories are minimal. Adding a statement piece would elevate the look."),
    ("Trend Alignment", 7, "📈",
     "You've incorporated current trends nicely without going overboard."),
    ("Style Expression", 6, "🪄",
     "Your personal style is coming through, but could be more defined."),
)

_DEFAULT_TIPS = (
    ("Overall Style", [
        "Try adding one statement piece to create a focal point.",
        "Consider the occasion and dress appropriately for the setting.",
        "Build your outfit around your favorite piece.",
    ]),
    ("Color Coordination", [
        "Stick to 2-3 colors that complement each other.",
        "Use the color wheel to find complementary colors.",
        "When in doubt, neutrals always work well together.",
    ]),
    ("Fit & Proportion", [
        "Invest in tailoring to make even inexpensive clothes look high-end.",
        "Balance loose and fitted items for a proportional look.",
        "Make sure the clothes fit your current body, not the size you want to be.",
    ]),
    ("Accessories", [
        "One statement accessory is often better than many small ones.",
        "Match metals for a cohesive look.",
        "Consider your accessories' scale in relation to your body type.",
    ]),
    ("Trend Alignment", [
        "Incorporate trends through accessories rather than major pieces.",
        "Only follow trends that work for your body and style.",
        "Classic pieces with trendy accents create a balanced look.",
    ]),
    ("Style Expression", [
        "Incorporate one piece that reflects your personality.",
        "Build a signature style element you wear regularly.",
        "Don't be afraid to break fashion 'rules' to express yourself.",
    ]),
)

_DEFAULT_NEXT_LEVEL = (
    "Take photos of outfits you love to reference later.",
    "Invest in quality basics that will last for years.",
    "Play with texture mixing for visual interest.",
    "Consider the silhouette as a whole when putting together an outfit.",
)


def default_result() -> AnalysisResult:
    """The analysis returned when nothing usable could be extracted."""
    breakdown = [
        CategoryScore(category=name, score=score, emoji=emoji, details=details)
        for name, score, emoji, details in _DEFAULT_BREAKDOWN
    ]
    return AnalysisResult(
        total_score=6,
        breakdown=breakdown,
        feedback=DEFAULT_FEEDBACK,
        origin="default",
    )


def default_tips() -> TipsResult:
    return TipsResult(
        style_tips=[
            StyleTipGroup(category=name, tips=list(tips))
            for name, tips in _DEFAULT_TIPS
        ],
        next_level_tips=list(_DEFAULT_NEXT_LEVEL),
    )
