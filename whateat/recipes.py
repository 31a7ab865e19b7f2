import re
from dataclasses import dataclass, field
from enum import Enum


class MealType(str, Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    DESSERT = "dessert"
    OTHER = "other"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def from_api_value(cls, value) -> "MealType | None":
        """Match a server label ("Breakfast", " dinner ") to a meal type, or None."""
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        for meal_type in cls:
            if meal_type.value == normalized:
                return meal_type
        return None


@dataclass
class Ingredient:
    name: str
    amount: str | None = None
    text: str | None = None  # free-form line, wins over name/amount

    @property
    def display_text(self) -> str:
        if self.text:
            return self.text
        if self.amount:
            return f"{self.amount} {self.name}"
        return self.name

    @property
    def cache_key(self) -> str:
        """Key for the per-recipe check-mark set; stable across re-decodes."""
        return re.sub(r"\s+", " ", self.display_text).strip().lower()


@dataclass
class InstructionStep:
    step_number: int
    title: str
    description: str


@dataclass
class RecipeOwnership:
    is_user_owned: bool = False


@dataclass
class Recipe:
    id: str
    name: str
    meal_type: MealType = MealType.OTHER
    prep_time: str = "N/A"
    calories: int | None = None
    image_url: str | None = None
    ingredients: list[Ingredient] = field(default_factory=list)
    instructions: list[InstructionStep] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    source_type: str | None = None  # "user", "daily", "share", ...
    ownership: RecipeOwnership = field(default_factory=RecipeOwnership)
    editable_recipe_id: str | None = None

    @property
    def is_user_owned(self) -> bool:
        return self.ownership.is_user_owned or self.source_type == "user"

    @property
    def calories_display(self) -> str:
        if self.calories is None:
            return "N/A"
        return f"{self.calories} kcal"
