"""
Prompts for turning sketches into React components and repairing their builds.

The generation prompt is sent once with the sketch image. The repair and edit
prompts seed the tool-calling agent conversation.
"""

from typing import Mapping, Optional

from ..config import APP_DIR, COMPONENT_PATH

# =============================================================================
# GENERATION PROMPT
# =============================================================================

WEBSITE_PROMPT_BODY = """
🎯 YOUR MISSION:
Turn this sketch into a REAL, USABLE webpage component. Follow the sketch's layout and structure closely, but make it look like a finished product, not a wireframe.

⚖️ THE BALANCE:
- KEEP the sketch's layout, element positions, groupings, and proportions
- KEEP the number and type of elements the user drew
- KEEP any text the user wrote (verbatim or best-guess if handwriting is unclear)
- BUT bring it to life: raw rectangles become styled cards with titles, descriptions, and icons. Empty circles become avatars. Lines become separators. A bar at the top becomes a real navbar with links.
- Think of the sketch as a WIREFRAME. Your job is to turn the wireframe into the FINAL UI. Same structure, but polished and filled with realistic content.

🧠 HOW TO INTERPRET SHAPES:
- Rectangle/box → Card, container, image placeholder, section, or panel (infer from context)
- Small rectangle inside a larger one → Button, input field, or nested card
- Circle → Avatar, icon container, or profile picture
- Line → Separator, border, or divider
- Bar at top → Navigation bar / header
- Bar at bottom → Footer
- Sidebar rectangle → Sidebar navigation
- Grid of boxes → Card grid, feature grid, gallery, or product listing
- Text scribbles → Headings, paragraphs, labels (interpret the intent)
- Arrows → Flow direction, navigation, or call-to-action indicators
- Stars/shapes → Ratings, icons, or decorative elements

📐 LAYOUT RULES:
1. Study the sketch's spatial layout FIRST before writing code
2. Elements in a row → flex-row
3. Elements stacked → flex-col
4. Grid of items → CSS grid matching the column count drawn
5. Preserve relative positions: top-left stays top-left, centered stays centered
6. Match proportions: if sidebar is ~1/4 width, use w-1/4 or similar
7. Full page layout → create full page. Single component → create that component

📝 CONTENT RULES:
1. Use the user's written text EXACTLY when legible
2. For unclear text, make a sensible guess from context
3. Labeled boxes ("Header", "Card", "Nav") → create those exact elements
4. Fill empty elements with SHORT, REALISTIC content that fits the context
5. NO Lorem ipsum, use real-sounding content
6. Add appropriate lucide-react icons where they naturally belong

🎨 STYLING APPROACH:
- Clean, modern, professional, like a real production app
- Cohesive color scheme, proper spacing, typography, and visual hierarchy
- Subtle shadows and borders, rounded corners, hover states on interactive elements
- Use shadcn/ui components for a polished look out of the box
- framer-motion for subtle entrance animations only

🚫 DO NOT:
- Rearrange the layout into something different from the sketch
- Add entire new sections the user didn't draw
- Turn a simple sketch into an over-the-top marketing page
- Use excessive gradients, glassmorphism, or visual effects
- Make it look completely different from what was drawn

💻 CODE REQUIREMENTS:
- "use client" at the top
- export default function Component()
- Tailwind CSS for styling
- shadcn/ui components for UI elements
- lucide-react for icons
- framer-motion for subtle animations
- NO comments in the code
- Must compile without errors: properly closed JSX, correct imports
- Responsive

📦 AVAILABLE SHADCN/UI COMPONENTS:
- Button: import { Button } from "@/components/ui/button"
- Input: import { Input } from "@/components/ui/input"
- Label: import { Label } from "@/components/ui/label"
- Card, CardHeader, CardContent, CardFooter, CardTitle, CardDescription: from "@/components/ui/card"
- Tabs, TabsList, TabsTrigger, TabsContent: from "@/components/ui/tabs"
- Select, SelectTrigger, SelectValue, SelectContent, SelectItem: from "@/components/ui/select"
- Checkbox: from "@/components/ui/checkbox"
- Switch: from "@/components/ui/switch"
- Textarea: from "@/components/ui/textarea"
- Badge: from "@/components/ui/badge"
- Avatar, AvatarImage, AvatarFallback: from "@/components/ui/avatar"
- Dialog, DialogTrigger, DialogContent, DialogHeader, DialogTitle: from "@/components/ui/dialog"
- Separator: from "@/components/ui/separator"
- Progress: from "@/components/ui/progress"
- Accordion, AccordionItem, AccordionTrigger, AccordionContent: from "@/components/ui/accordion"
- Sheet, SheetTrigger, SheetContent: from "@/components/ui/sheet"
- DropdownMenu, DropdownMenuTrigger, DropdownMenuContent, DropdownMenuItem: from "@/components/ui/dropdown-menu"
- Tooltip, TooltipTrigger, TooltipContent, TooltipProvider: from "@/components/ui/tooltip"
- ScrollArea: from "@/components/ui/scroll-area"
- Slider: from "@/components/ui/slider"
- RadioGroup, RadioGroupItem: from "@/components/ui/radio-group"
- Table, TableHeader, TableBody, TableRow, TableHead, TableCell: from "@/components/ui/table"
- NavigationMenu: from "@/components/ui/navigation-menu"
- Alert, AlertTitle, AlertDescription: from "@/components/ui/alert"
- Skeleton: from "@/components/ui/skeleton"

🔥 CRITICAL RULES:
1. ALWAYS start with "use client"
2. Return ONLY TSX code wrapped in ```tsx and ``` markers
3. NO comments in code
4. NO explanations outside the code block
5. Component name MUST be "Component" (export default function Component)
6. All JSX tags, braces, and parentheses MUST be properly closed
7. Code MUST compile without syntax errors
8. Same layout as the sketch, but make it look like a REAL finished webpage

Now look at the sketch and convert it into a polished UI. Same structure, real content, production quality."""


def create_website_prompt(
    style_guide: Optional[str] = None,
    custom_prompt: Optional[str] = None,
    color_palette: Optional[Mapping[str, str]] = None,
) -> str:
    """Build the generation prompt from the user's style, prompt and palette hints."""
    style_instructions = f"\n🎨 STYLE GUIDE: {style_guide}" if style_guide else ""

    color_instructions = ""
    if color_palette:
        primary = color_palette.get("primary", "")
        color_instructions = f"""
🎨 COLOR PALETTE (Use these exact colors):
- Primary: {primary}
- Secondary: {color_palette.get("secondary", "")}
- Accent: {color_palette.get("accent", "")}
- Background: {color_palette.get("background", "")}
- Text: {color_palette.get("text", "")}

Map these colors to Tailwind classes appropriately (e.g., use arbitrary values like bg-[{primary}])"""

    custom_instructions = f"\n\n📝 CUSTOM INSTRUCTIONS:\n{custom_prompt}" if custom_prompt else ""

    return (
        "You convert hand-drawn sketches into real, polished React UI components.\n"
        f"{style_instructions}{color_instructions}{custom_instructions}\n"
        f"{WEBSITE_PROMPT_BODY}"
    )


# =============================================================================
# REPAIR AGENT PROMPTS
# =============================================================================

TOOLS_SECTION = """TOOLS YOU HAVE:
- read_file(path): Read any file
- write_file(path, content): Write any file
- run_command(command, cwd): Run any shell command
- list_files(path): List directory contents
- task_complete(success, message): Call when the build succeeds"""


def create_repair_prompt(source: str, diagnostics: str) -> str:
    """System instruction for the build-repair agent."""
    return f"""You are an expert React/Next.js developer with FULL ACCESS to a sandbox environment. Your job is to fix build errors.

YOUR MISSION:
1. The component at {COMPONENT_PATH} has build errors
2. You have FULL AUTONOMOUS ACCESS to fix them
3. Keep the visual design EXACTLY the same, only fix code-level errors

{TOOLS_SECTION}

WORKFLOW:
1. Read the component to understand the code structure
2. Identify syntax errors from the build output
3. Fix the code and write it back to {COMPONENT_PATH}
4. Run "npm run build" in {APP_DIR} to verify
5. If still errors, read and fix again
6. When build succeeds (exit code 0), call task_complete(true)

Current component source:
```tsx
{source}
```

Current build errors:
```
{diagnostics}
```

The original sketch is attached. The component MUST match it visually. Only fix CODE errors."""


def create_edit_prompt(source: str, request: str, diagnostics: str = "") -> str:
    """System instruction for applying a user's change request with the same tools."""
    errors_section = f"\nCurrent build errors:\n```\n{diagnostics}\n```\n" if diagnostics else ""
    return f"""You are an autonomous coding agent with FULL ACCESS to a Next.js sandbox with shadcn/ui.

YOUR MISSION:
1. Apply the user's change request to the component at {COMPONENT_PATH}
2. Keep everything the user did not ask to change
3. Make sure the project still builds

USER REQUEST: {request}

{TOOLS_SECTION}

RULES:
- For shadcn components, use: npx shadcn@latest add <component> --yes
- For npm packages, use: npm install <package>
- Use @/components/ui/* for shadcn imports and lucide-react for icons
- Always export default the main component
- Run "npm run build" in {APP_DIR} and fix ALL errors before calling task_complete

Current component source:
```tsx
{source}
```
{errors_section}"""


REPAIR_START_MESSAGE = "Start now. Read the component file and fix the errors."
EDIT_START_MESSAGE = "Start now. Read the component file and apply the requested change."
CONTINUE_MESSAGE = "Continue. Fix any remaining errors and run build again."
